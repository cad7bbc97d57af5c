"""
Snapshot storage for finalized trips.

The host application owns durable storage; the orchestrator only asks it to
save one snapshot at completion. Any storage error surfaces as
PersistenceFailure so the caller can offer a retry.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from quickplan.shared.contracts.snapshot import TripSnapshotV1
from quickplan.shared.errors import PersistenceFailure


logger = logging.getLogger(__name__)


class SnapshotStore:
    """Interface for host-owned snapshot storage."""

    def save(self, snapshot: TripSnapshotV1) -> str:
        """Persist the snapshot and return the trip id."""
        raise NotImplementedError

    def load(self, trip_id: str) -> Optional[TripSnapshotV1]:
        raise NotImplementedError


class JsonFileSnapshotStore(SnapshotStore):
    """Writes one JSON document per trip into a directory."""

    def __init__(self, directory: str = "snapshots"):
        self.directory = Path(directory)

    def save(self, snapshot: TripSnapshotV1) -> str:
        path = self.directory / f"{snapshot.trip_id}.json"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(snapshot.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"[trip={snapshot.trip_id}] Snapshot write failed: {e}")
            raise PersistenceFailure(
                f"Could not save trip {snapshot.trip_id}: {e}",
                details={"path": str(path)},
            ) from e

        # Read back to confirm the write landed before reporting success
        if not path.exists():
            raise PersistenceFailure(
                f"Trip {snapshot.trip_id} was not found after writing",
                details={"path": str(path)},
            )

        logger.info(f"[trip={snapshot.trip_id}] Snapshot saved to {path}")
        return snapshot.trip_id

    def load(self, trip_id: str) -> Optional[TripSnapshotV1]:
        path = self.directory / f"{trip_id}.json"
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return TripSnapshotV1.model_validate(json.load(f))


class InMemorySnapshotStore(SnapshotStore):
    """Keeps snapshots in a dict; for hosts without a filesystem and for tests."""

    def __init__(self):
        self.snapshots: Dict[str, TripSnapshotV1] = {}

    def save(self, snapshot: TripSnapshotV1) -> str:
        self.snapshots[snapshot.trip_id] = snapshot
        return snapshot.trip_id

    def load(self, trip_id: str) -> Optional[TripSnapshotV1]:
        return self.snapshots.get(trip_id)
