"""Persisted state snapshot shared by every reconciliation pass."""

import asyncio
import json
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from reconciler.clients.exceptions import StateError
from reconciler.core.models import ResourceKind

logger = structlog.get_logger(__name__)


class StateEntry(BaseModel):
    """Last-known state of one managed instance."""

    # Identity
    address: str                       # kind.name
    kind: ResourceKind
    identity: str                      # Remote ID (composite for nested kinds)

    # Last observation and the declared values that produced it
    observed: Dict[str, Any] = Field(default_factory=dict)
    applied_attributes: Dict[str, Any] = Field(default_factory=dict)
    last_applied_hash: Optional[str] = None

    # Addresses this instance referenced when it was last applied
    dependencies: List[str] = Field(default_factory=list)

    # Import placeholders whose diff is suppressed
    suppressed_attributes: List[str] = Field(default_factory=list)
    imported: bool = False

    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StateSnapshot(BaseModel):
    """Mapping from instance address to its last committed entry."""

    version: int = 1
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    entries: Dict[str, StateEntry] = Field(default_factory=dict)

    def get(self, address: str) -> Optional[StateEntry]:
        return self.entries.get(address)

    def find_by_identity(self, kind: ResourceKind, identity: str) -> Optional[StateEntry]:
        """Find the entry bound to a remote identity, if any."""
        for entry in self.entries.values():
            if entry.kind == kind and entry.identity == identity:
                return entry
        return None

    def dependents_of(self, address: str) -> List[str]:
        """Addresses of entries that recorded ``address`` as a dependency."""
        return sorted(
            entry.address for entry in self.entries.values()
            if address in entry.dependencies
        )


class StateManager:
    """Lock-guarded owner of the StateSnapshot.

    The manager is created by the caller and handed to the driver, so two
    passes never share state unless they are given the same manager. Every
    mutation is persisted immediately when a state directory is configured.
    """

    def __init__(
        self,
        state_dir: Optional[Path] = None,
        state_file: str = "state.json",
    ) -> None:
        """Initialize state manager.

        Args:
            state_dir: Directory to store the state file (None keeps state in memory)
            state_file: File name of the persisted snapshot
        """
        self.state_dir = Path(state_dir) if state_dir is not None else None
        self.state_file = state_file
        self._snapshot = StateSnapshot()
        self._lock = asyncio.Lock()
        self._logger = logger.bind(
            state_dir=str(self.state_dir) if self.state_dir else None,
        )

    @property
    def path(self) -> Optional[Path]:
        if self.state_dir is None:
            return None
        return self.state_dir / self.state_file

    def load(self) -> StateSnapshot:
        """Load the persisted snapshot, starting empty when none exists.

        Returns:
            The loaded snapshot

        Raises:
            StateError: If the state file exists but cannot be parsed
        """
        path = self.path
        if path is None or not path.exists():
            self._logger.info("No persisted state found, starting empty")
            self._snapshot = StateSnapshot()
            return self._snapshot

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._snapshot = StateSnapshot.model_validate(data)
        except (OSError, ValueError) as e:
            raise StateError(f"Failed to load state from {path}: {e}") from e

        self._logger.info(
            "Loaded state",
            file=str(path),
            serial=self._snapshot.serial,
            entries=len(self._snapshot.entries),
        )
        return self._snapshot

    def _save(self) -> None:
        path = self.path
        if path is None:
            return

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(self._snapshot.model_dump(mode="json"), f, indent=2, default=str)

        # Keep the previous snapshot next to the new one
        if path.exists():
            backup_file = path.with_suffix(path.suffix + ".backup")
            os.replace(path, backup_file)
        os.replace(tmp_file, path)

        self._logger.debug(
            "Saved state",
            file=str(path),
            serial=self._snapshot.serial,
            entries=len(self._snapshot.entries),
        )

    def snapshot(self) -> StateSnapshot:
        """Return a deep copy of the current snapshot for read-only use."""
        return self._snapshot.model_copy(deep=True)

    def get(self, address: str) -> Optional[StateEntry]:
        entry = self._snapshot.get(address)
        return entry.model_copy(deep=True) if entry is not None else None

    async def commit(self, entry: StateEntry) -> None:
        """Record an entry after a successful remote operation.

        Args:
            entry: Entry to store under its address
        """
        async with self._lock:
            entry.updated_at = datetime.now(timezone.utc)
            self._snapshot.entries[entry.address] = entry
            self._snapshot.serial += 1
            self._save()

        self._logger.debug("Committed state entry", address=entry.address, identity=entry.identity)

    async def remove(self, address: str) -> Optional[StateEntry]:
        """Drop an entry from the snapshot.

        Returns:
            The removed entry, or None if the address was not tracked
        """
        async with self._lock:
            entry = self._snapshot.entries.pop(address, None)
            if entry is not None:
                self._snapshot.serial += 1
                self._save()

        if entry is not None:
            self._logger.debug("Removed state entry", address=address, identity=entry.identity)
        return entry
