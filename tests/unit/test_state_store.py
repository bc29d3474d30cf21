"""Tests for the persisted state snapshot."""

import json

import pytest

from reconciler.clients.exceptions import StateError
from reconciler.core.models import ResourceKind
from reconciler.core.state import StateEntry, StateManager


def make_entry(address: str = "project.main", identity: str = "proj_1", **kwargs) -> StateEntry:
    kind = ResourceKind(address.split(".")[0])
    return StateEntry(address=address, kind=kind, identity=identity, **kwargs)


@pytest.mark.asyncio
class TestStateManager:
    """Test StateManager persistence."""

    async def test_commit_persists_and_reloads(self, tmp_path):
        manager = StateManager(tmp_path)
        manager.load()
        await manager.commit(make_entry(observed={"name": "Main"}))

        reloaded = StateManager(tmp_path)
        snapshot = reloaded.load()

        assert snapshot.get("project.main").identity == "proj_1"
        assert snapshot.get("project.main").observed == {"name": "Main"}
        assert snapshot.serial == 1

    async def test_previous_snapshot_is_backed_up(self, tmp_path):
        manager = StateManager(tmp_path)
        await manager.commit(make_entry())
        await manager.commit(make_entry("service_account.bot", "proj_1/svc_1"))

        backup = json.loads((tmp_path / "state.json.backup").read_text())
        assert list(backup["entries"]) == ["project.main"]
        assert not (tmp_path / "state.json.tmp").exists()

    async def test_remove(self, tmp_path):
        manager = StateManager(tmp_path)
        await manager.commit(make_entry())

        removed = await manager.remove("project.main")

        assert removed.identity == "proj_1"
        assert manager.get("project.main") is None
        assert await manager.remove("project.main") is None
        assert StateManager(tmp_path).load().entries == {}

    async def test_snapshot_is_a_copy(self):
        manager = StateManager()
        await manager.commit(make_entry(observed={"name": "Main"}))

        snapshot = manager.snapshot()
        snapshot.entries["project.main"].observed["name"] = "Mutated"

        assert manager.get("project.main").observed["name"] == "Main"

    async def test_in_memory_manager_writes_nothing(self, tmp_path):
        manager = StateManager()
        await manager.commit(make_entry())

        assert manager.path is None
        assert list(tmp_path.iterdir()) == []

    def test_missing_file_starts_empty(self, tmp_path):
        snapshot = StateManager(tmp_path / "nowhere").load()

        assert snapshot.entries == {}
        assert snapshot.serial == 0

    def test_corrupt_file_raises(self, tmp_path):
        (tmp_path / "state.json").write_text("{not json")

        with pytest.raises(StateError, match="Failed to load state"):
            StateManager(tmp_path).load()


class TestStateSnapshot:
    """Test snapshot queries."""

    @pytest.fixture
    def snapshot(self):
        manager = StateManager()
        snapshot = manager.snapshot()
        snapshot.entries = {
            "project.main": make_entry(),
            "service_account.bot": make_entry(
                "service_account.bot", "proj_1/svc_1", dependencies=["project.main"]
            ),
            "project_user.ada": make_entry(
                "project_user.ada", "proj_1/user_1", dependencies=["project.main"]
            ),
        }
        return snapshot

    def test_find_by_identity(self, snapshot):
        found = snapshot.find_by_identity(ResourceKind.SERVICE_ACCOUNT, "proj_1/svc_1")

        assert found.address == "service_account.bot"
        assert snapshot.find_by_identity(ResourceKind.PROJECT, "proj_1/svc_1") is None

    def test_dependents_of(self, snapshot):
        assert snapshot.dependents_of("project.main") == ["project_user.ada", "service_account.bot"]
        assert snapshot.dependents_of("service_account.bot") == []
