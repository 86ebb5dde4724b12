"""Original-state snapshot storage.

A snapshot is the configuration of a device as first observed, kept per
device identity so the onboarding can later put things back the way they
were. It is written by the config fetcher and read on every run.

Directory structure (FileSnapshotStore):
    <base_dir>/
    └── state/
        └── original/
            └── <identity>.yaml
"""
import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import OnboardingError

logger = logging.getLogger(__name__)

# Default state directory
DEFAULT_STATE_DIR = Path.home() / ".declarative-onboarding"


class SnapshotStore(ABC):
    """Keyed storage for original-state snapshots."""

    @abstractmethod
    def get(self, identity: str) -> Optional[dict[str, Any]]:
        """Return the snapshot for `identity`, or None if there is none yet."""
        pass

    @abstractmethod
    def set(self, identity: str, document: dict[str, Any]) -> None:
        """Store (replace) the snapshot for `identity`."""
        pass

    @abstractmethod
    def list_ids(self) -> list[str]:
        """Identities with a stored snapshot."""
        pass

    def exists(self, identity: str) -> bool:
        return self.get(identity) is not None


class MemorySnapshotStore(SnapshotStore):
    """Process-local store. Snapshots are lost when the process exits."""

    def __init__(self, initial: Optional[dict[str, dict[str, Any]]] = None):
        self._snapshots: dict[str, dict[str, Any]] = copy.deepcopy(initial or {})

    def get(self, identity: str) -> Optional[dict[str, Any]]:
        snapshot = self._snapshots.get(identity)
        return copy.deepcopy(snapshot) if snapshot is not None else None

    def set(self, identity: str, document: dict[str, Any]) -> None:
        self._snapshots[identity] = copy.deepcopy(document)

    def list_ids(self) -> list[str]:
        return sorted(self._snapshots)


class FileSnapshotStore(SnapshotStore):
    """One YAML file per device identity."""

    def __init__(self, base_dir: Optional[Path] = None):
        """
        Initialize the snapshot store.

        Args:
            base_dir: Base directory for state (default: ~/.declarative-onboarding)
        """
        self.base_dir = Path(base_dir) if base_dir else DEFAULT_STATE_DIR
        self.original_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Snapshot store initialized at {self.base_dir}")

    @property
    def original_dir(self) -> Path:
        return self.base_dir / "state" / "original"

    def _path(self, identity: str) -> Path:
        if not identity or "/" in identity or identity.startswith("."):
            raise OnboardingError(f"Invalid device identity for snapshot: {identity!r}")
        return self.original_dir / f"{identity}.yaml"

    def get(self, identity: str) -> Optional[dict[str, Any]]:
        path = self._path(identity)
        if not path.exists():
            return None

        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to read snapshot for {identity}: {e}")
            raise OnboardingError(f"Corrupt snapshot for {identity}: {e}") from e

        return data.get("original") or {}

    def set(self, identity: str, document: dict[str, Any]) -> None:
        path = self._path(identity)
        content = {
            "device_id": identity,
            "captured_at": datetime.now(timezone.utc).isoformat(),
            "original": document,
        }
        path.write_text(yaml.safe_dump(content, default_flow_style=False, sort_keys=False))
        logger.info(f"Saved original config for {identity}")

    def list_ids(self) -> list[str]:
        return sorted(p.stem for p in self.original_dir.glob("*.yaml"))

    def exists(self, identity: str) -> bool:
        return self._path(identity).exists()
