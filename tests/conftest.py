"""Shared pytest fixtures for the reconciler tests."""

from typing import Optional

import httpx
import pytest
from pydantic import SecretStr

from reconciler.clients.openai import OpenAIClient
from reconciler.config.options_models import ReconciliationOptions
from reconciler.core.state import StateManager
from tests.fakes import ADMIN_KEY, API_URL, PROJECT_KEY, FakeOpenAI


@pytest.fixture
def fake_api():
    """Fresh fake API per test."""
    return FakeOpenAI()


@pytest.fixture
def make_client(fake_api):
    """Factory for OpenAI clients wired to the fake API."""

    def _make(
        admin: bool = True,
        project: bool = True,
        max_retries: int = 2,
        project_id: Optional[str] = None,
    ) -> OpenAIClient:
        return OpenAIClient(
            project_api_key=SecretStr(PROJECT_KEY) if project else None,
            admin_api_key=SecretStr(ADMIN_KEY) if admin else None,
            api_url=API_URL,
            project_id=project_id,
            max_retries=max_retries,
            retry_delay_seconds=0,
            transport=httpx.MockTransport(fake_api.handler),
        )

    return _make


@pytest.fixture
def client(make_client):
    """Client holding both an admin and a project key."""
    return make_client()


@pytest.fixture
def options():
    """Reconciliation options without real delays."""
    return ReconciliationOptions(
        operation_retries=1,
        operation_retry_delay_seconds=0,
        poll_interval_seconds=0,
        poll_timeout_seconds=0.05,
        upload_chunk_size_bytes=4,
    )


@pytest.fixture
def state_manager(tmp_path):
    """State manager persisting into a temporary directory."""
    return StateManager(state_dir=tmp_path / "state")
