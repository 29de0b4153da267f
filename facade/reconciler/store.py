"""
Snapshot stores.

JsonSnapshotStore keeps one SnapshotDocument per façade at
``{root}/{facade_name}.json``; each environment is one ``per_environment``
entry. Writes go to a temp file in the same directory and are moved into
place with os.replace, so readers never see a half-written document.

Neither store serializes concurrent writers; callers hold at most one writer
per façade name.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from facade.core.exceptions import InvalidSnapshotError
from facade.core.models import Snapshot, SnapshotDocument
from facade.reconciler.digest import compute_state_digest, with_digest

logger = logging.getLogger(__name__)


def empty_snapshot() -> Snapshot:
    """Snapshot of a freshly created façade."""
    return with_digest(Snapshot())


def verify_digest(snapshot: Snapshot, where: str = "") -> Snapshot:
    """Fail if the stored digest does not match the snapshot content."""
    expected = compute_state_digest(snapshot)
    if snapshot.state_digest != expected:
        raise InvalidSnapshotError(
            f"State digest mismatch{' in ' + where if where else ''}",
            {"stored": snapshot.state_digest, "computed": expected},
        )
    return snapshot


class JsonSnapshotStore:
    """File-backed snapshot store (one JSON document per façade)."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def path_for(self, facade_name: str) -> Path:
        return self.root / f"{facade_name}.json"

    def load_document(self, facade_name: str) -> SnapshotDocument:
        path = self.path_for(facade_name)
        if not path.exists():
            return SnapshotDocument(facade_name=facade_name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = SnapshotDocument.model_validate(json.load(f))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise InvalidSnapshotError(f"Unreadable snapshot document {path}: {e}") from e
        if document.facade_name != facade_name:
            raise InvalidSnapshotError(
                f"Snapshot document {path} belongs to {document.facade_name!r}, not {facade_name!r}"
            )
        return document

    def load(self, facade_name: str, environment_id: str) -> Snapshot:
        snapshot = self.load_document(facade_name).get(environment_id)
        if snapshot is None:
            logger.debug(f"No snapshot for {facade_name}/{environment_id}; starting empty")
            return empty_snapshot()
        return verify_digest(snapshot, f"{facade_name}/{environment_id}")

    def save(self, facade_name: str, environment_id: str, snapshot: Snapshot) -> None:
        verify_digest(snapshot, f"{facade_name}/{environment_id}")
        document = self.load_document(facade_name)
        document.put(environment_id, snapshot)

        self.root.mkdir(parents=True, exist_ok=True)
        path = self.path_for(facade_name)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{facade_name}.", suffix=".tmp", dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.info(f"Saved snapshot {facade_name}/{environment_id} -> {path} ({snapshot.state_digest[:18]})")


class MemorySnapshotStore:
    """Dictionary-backed store; copies on the way in and out."""

    def __init__(self):
        self._snapshots: Dict[Tuple[str, str], Snapshot] = {}

    def load(self, facade_name: str, environment_id: str) -> Snapshot:
        snapshot = self._snapshots.get((facade_name, environment_id))
        if snapshot is None:
            return empty_snapshot()
        return snapshot.model_copy(deep=True)

    def save(self, facade_name: str, environment_id: str, snapshot: Snapshot) -> None:
        verify_digest(snapshot, f"{facade_name}/{environment_id}")
        self._snapshots[(facade_name, environment_id)] = snapshot.model_copy(deep=True)
