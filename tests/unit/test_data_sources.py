"""Tests for read-only list data sources against the fake API."""

import pytest

from reconciler.clients.exceptions import StateError, ValidationError
from reconciler.core.delete_policy import DEFAULT_DELETE_POLICIES, DeleteMode
from reconciler.resources import CONTROLLER_CLASSES
from reconciler.resources.data_sources import (
    AssistantsDataSource,
    FilesDataSource,
    FineTuningJobsDataSource,
    ListDataSource,
    ProjectsDataSource,
    ProjectUsersDataSource,
    RateLimitsDataSource,
    VectorStoreFilesDataSource,
)
from tests.fakes import page

PROJECTS = "/organization/projects"


def projects(*ids: str):
    return [{"object": "organization.project", "id": i, "name": i.upper()} for i in ids]


class TestRegistry:
    """Test how data sources plug into the controller registry."""

    def test_every_data_source_is_local_only(self):
        sources = [cls for cls in CONTROLLER_CLASSES if issubclass(cls, ListDataSource)]

        assert len(sources) == 13
        for cls in sources:
            assert cls.read_only
            assert DEFAULT_DELETE_POLICIES[cls.kind].mode == DeleteMode.LOCAL_ONLY

    def test_schema_built_from_listed_kind(self):
        schema = ProjectUsersDataSource.schema

        assert schema["project_id"].required
        assert schema["users"].computed
        assert set(schema) == {"project_id", "limit", "users", "ids", "count"}

    def test_scope_follows_listed_kind(self):
        assert ProjectsDataSource.scope == ProjectsDataSource.source.scope
        assert FilesDataSource.scope == FilesDataSource.source.scope


@pytest.mark.asyncio
class TestListing:
    """Test walking collections through the cursor walker."""

    async def test_walks_every_page(self, client, fake_api):
        fake_api.add(
            "GET",
            PROJECTS,
            page(projects("proj_1", "proj_2"), has_more=True),
            page(projects("proj_3")),
        )

        remote = await ProjectsDataSource(client).fetch({"include_archived": True})

        assert remote.identity == "projects"
        assert remote.attributes["ids"] == ["proj_1", "proj_2", "proj_3"]
        assert remote.attributes["count"] == 3
        assert remote.attributes["projects"][2]["name"] == "PROJ_3"
        first, second = fake_api.calls("GET", PROJECTS)
        assert "after" not in first.url.params
        assert first.url.params["include_archived"] == "true"
        assert second.url.params["after"] == "proj_2"
        assert second.url.params["limit"] == "100"

    async def test_limit_stops_walk(self, client, fake_api):
        fake_api.add("GET", PROJECTS, page(projects("proj_1", "proj_2"), has_more=True))

        remote = await ProjectsDataSource(client).fetch({"limit": 2})

        assert remote.attributes["ids"] == ["proj_1", "proj_2"]
        requests = fake_api.calls("GET", PROJECTS)
        assert len(requests) == 1
        assert requests[0].url.params["limit"] == "2"

    async def test_nested_collection(self, client, fake_api):
        fake_api.add(
            "GET",
            f"{PROJECTS}/proj_1/rate_limits",
            page([{"object": "project.rate_limit", "id": "rl-gpt-4", "model": "gpt-4"}]),
        )

        remote = await RateLimitsDataSource(client).fetch({"project_id": "proj_1"})

        assert remote.identity == "rate_limits/proj_1"
        assert remote.attributes["project_id"] == "proj_1"
        assert remote.attributes["rate_limits"][0]["project_id"] == "proj_1"
        assert remote.attributes["ids"] == ["rl-gpt-4"]

    async def test_empty_collection(self, client, fake_api):
        fake_api.add("GET", "/organization/projects/proj_1/users", page([]))

        remote = await ProjectUsersDataSource(client).fetch({"project_id": "proj_1"})

        assert remote.attributes == {"users": [], "ids": [], "count": 0, "project_id": "proj_1"}

    async def test_files_filtered_by_purpose(self, client, fake_api):
        fake_api.add("GET", "/files", page([{"id": "file-1", "purpose": "batch"}]))

        remote = await FilesDataSource(client).fetch({"purpose": "batch", "order": "asc"})

        assert remote.attributes["ids"] == ["file-1"]
        request = fake_api.calls("GET", "/files")[0]
        assert request.url.params["purpose"] == "batch"
        assert request.url.params["order"] == "asc"

    async def test_fine_tuning_jobs_filtered_by_metadata(self, client, fake_api):
        fake_api.add("GET", "/fine_tuning/jobs", page([{"id": "ftjob-1", "status": "running"}]))

        await FineTuningJobsDataSource(client).fetch({"metadata": {"team": "nlp"}})

        request = fake_api.calls("GET", "/fine_tuning/jobs")[0]
        assert request.url.params["metadata[team]"] == "nlp"
        assert "metadata" not in request.url.params

    async def test_beta_header_sent_for_assistants(self, client, fake_api):
        fake_api.add("GET", "/assistants", page([{"id": "asst_1"}]))

        await AssistantsDataSource(client).fetch({})

        request = fake_api.calls("GET", "/assistants")[0]
        assert request.headers["OpenAI-Beta"] == "assistants=v2"

    async def test_never_creates_or_imports(self, client, fake_api):
        source = ProjectsDataSource(client)

        with pytest.raises(StateError, match="read-only"):
            await source.create({})
        with pytest.raises(StateError, match="cannot be imported"):
            await source.import_("projects")
        assert fake_api.requests == []


class TestValidation:
    """Test declared filters."""

    def test_parent_required(self, client):
        with pytest.raises(ValidationError, match="project_id"):
            RateLimitsDataSource(client).validate({})

    @pytest.mark.parametrize("limit", [0, -1, "10", True])
    def test_invalid_limit(self, client, limit):
        with pytest.raises(ValidationError, match="limit"):
            ProjectsDataSource(client).validate({"limit": limit})

    def test_unknown_purpose(self, client):
        with pytest.raises(ValidationError, match="purpose"):
            FilesDataSource(client).validate({"purpose": "training"})

    def test_unknown_file_status_filter(self, client):
        with pytest.raises(ValidationError, match="filter"):
            VectorStoreFilesDataSource(client).validate({"vector_store_id": "vs_1", "filter": "done"})

    def test_outputs_cannot_be_declared(self, client):
        with pytest.raises(ValidationError, match="read-only"):
            ProjectsDataSource(client).validate({"ids": ["proj_1"]})

    def test_unknown_attribute(self, client):
        with pytest.raises(ValidationError, match="Unknown attributes"):
            ProjectsDataSource(client).validate({"purpose": "batch"})
