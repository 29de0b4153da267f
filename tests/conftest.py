# conftest.py
# Puts the repository root on sys.path and provides in-memory collaborators
# for the reconciler tests.

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)

if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from facade.core.config import Settings, StoreSettings, ValidationSettings  # noqa: E402
from facade.core.models import ArtifactId, ProviderRef, address  # noqa: E402
from facade.reconciler.store import MemorySnapshotStore  # noqa: E402


class DictArtifactSource:
    """Payloads keyed by unit name."""

    def __init__(self, payloads=None):
        self.payloads = dict(payloads or {})

    def load_payload(self, artifact_id):
        if artifact_id.unit_name not in self.payloads:
            raise FileNotFoundError(str(artifact_id))
        return self.payloads[artifact_id.unit_name]


class CountingDeployer:
    """Hands out sequential addresses starting at 0x1000."""

    def __init__(self, start=0x1000):
        self.next_address = start
        self.calls = []

    def deploy(self, artifact_id, payload):
        self.calls.append((artifact_id, payload))
        deployed = address(self.next_address)
        self.next_address += 1
        return deployed


class RecordingApplier:
    """Records apply() calls; raises `fail_with` when set."""

    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.calls = []

    def apply(self, facade_name, environment_id, batches, hook):
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append({
            "facade": facade_name,
            "environment": environment_id,
            "batches": list(batches),
            "hook": hook,
        })


class StepClock:
    """Deterministic clock advancing one minute per call."""

    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def aid():
    return ArtifactId.parse


@pytest.fixture
def provider():
    def build(name, capabilities=(), uses=()):
        return ProviderRef(artifact_id=name, capabilities=capabilities, namespace_uses=uses)
    return build


@pytest.fixture
def settings(tmp_path):
    return Settings(
        validation=ValidationSettings(),
        store=StoreSettings(snapshot_dir=tmp_path / "snapshots", default_environment="test"),
    )


@pytest.fixture
def source():
    return DictArtifactSource()


@pytest.fixture
def deployer():
    return CountingDeployer()


@pytest.fixture
def applier():
    return RecordingApplier()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def memory_store():
    return MemorySnapshotStore()


@pytest.fixture
def failing_applier():
    return RecordingApplier(fail_with=RuntimeError("post-apply hook reverted"))
