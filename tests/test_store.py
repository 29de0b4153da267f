"""
Tests for the JSON and in-memory snapshot stores.
"""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from facade.core.exceptions import InvalidSnapshotError
from facade.core.models import HistoryEntry, NamespaceConfig, NamespaceStatus, Snapshot, address
from facade.reconciler.digest import compute_state_digest, with_digest
from facade.reconciler.rebuild import rebuild_snapshot
from facade.reconciler.store import JsonSnapshotStore, MemorySnapshotStore, empty_snapshot


@pytest.fixture
def populated(provider, aid):
    snapshot = rebuild_snapshot(
        Snapshot(
            namespaces=[
                NamespaceConfig(namespace_id="v1", status=NamespaceStatus.REPLACED, superseded_by="v2"),
                NamespaceConfig(namespace_id="v2", version=2),
            ],
        ),
        [provider("src/facets/Math.sol:Math", [0x01, 0x02]), provider("Admin", [0x1f931c1c])],
        {aid("src/facets/Math.sol:Math"): address(0xAAA), aid("Admin"): address(0xBBB)},
        {aid("src/facets/Math.sol:Math"): "0xm", aid("Admin"): "0xa"},
    )
    snapshot.history.append(HistoryEntry(timestamp=datetime(2026, 3, 4, 5, 6, 7, 890, tzinfo=timezone.utc), added=3))
    return with_digest(snapshot)


def test_missing_document_loads_empty(tmp_path: Path):
    store = JsonSnapshotStore(tmp_path)
    snapshot = store.load("Facade", "staging")

    assert snapshot.routing == []
    assert snapshot.state_digest == empty_snapshot().state_digest


def test_round_trip_keeps_digest(tmp_path: Path, populated):
    store = JsonSnapshotStore(tmp_path)
    store.save("Facade", "staging", populated)

    loaded = JsonSnapshotStore(tmp_path).load("Facade", "staging")

    assert loaded.state_digest == populated.state_digest
    assert compute_state_digest(loaded) == populated.state_digest
    assert loaded.providers == populated.providers


def test_environments_are_independent(tmp_path: Path, populated):
    store = JsonSnapshotStore(tmp_path)
    store.save("Facade", "staging", populated)
    store.save("Facade", "prod", empty_snapshot())

    document = json.loads(store.path_for("Facade").read_text())
    assert [e["environment_id"] for e in document["per_environment"]] == ["staging", "prod"]
    assert store.load("Facade", "staging").routing == populated.routing
    assert store.load("Facade", "prod").routing == []
    assert list(tmp_path.glob("*.tmp")) == []


def test_stale_digest_rejected_on_save(tmp_path: Path, populated):
    stale = populated.model_copy(update={"state_digest": "0xstale"})
    with pytest.raises(InvalidSnapshotError):
        JsonSnapshotStore(tmp_path).save("Facade", "staging", stale)
    assert not (tmp_path / "Facade.json").exists()


def test_tampered_document_rejected_on_load(tmp_path: Path, populated):
    store = JsonSnapshotStore(tmp_path)
    store.save("Facade", "staging", populated)

    path = store.path_for("Facade")
    document = json.loads(path.read_text())
    document["per_environment"][0]["snapshot"]["routing"].pop()
    path.write_text(json.dumps(document))

    with pytest.raises(InvalidSnapshotError) as exc:
        store.load("Facade", "staging")
    assert "digest" in str(exc.value).lower()


def test_garbage_document_rejected(tmp_path: Path):
    (tmp_path / "Facade.json").write_text("{not json")
    with pytest.raises(InvalidSnapshotError):
        JsonSnapshotStore(tmp_path).load("Facade", "staging")


def test_document_for_other_facade_rejected(tmp_path: Path):
    (tmp_path / "Facade.json").write_text(json.dumps({"facade_name": "Other", "per_environment": []}))
    with pytest.raises(InvalidSnapshotError):
        JsonSnapshotStore(tmp_path).load("Facade", "staging")


def test_memory_store_copies(populated):
    store = MemorySnapshotStore()
    store.save("Facade", "staging", populated)

    loaded = store.load("Facade", "staging")
    loaded.routing.clear()

    assert store.load("Facade", "staging").routing == populated.routing
