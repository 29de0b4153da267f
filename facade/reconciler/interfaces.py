"""
Collaborator interfaces injected into the reconciler.

The reconciliation core never touches storage, compilers or the execution
environment directly; callers supply implementations of these protocols.
"""

from typing import Optional, Protocol, Sequence, Union

from facade.core.models import ArtifactId, Batch, PostApplyHook, Snapshot


class SnapshotStore(Protocol):
    """Load/save one environment's snapshot of a façade."""

    def load(self, facade_name: str, environment_id: str) -> Snapshot:
        ...

    def save(self, facade_name: str, environment_id: str, snapshot: Snapshot) -> None:
        ...


class ArtifactSource(Protocol):
    """Compiled deployable payload of a provider (bytes or 0x-hex)."""

    def load_payload(self, artifact_id: ArtifactId) -> Union[bytes, str]:
        ...


class Deployer(Protocol):
    """Deploy a fresh provider instance and return its address."""

    def deploy(self, artifact_id: ArtifactId, payload: bytes) -> str:
        ...


class BatchApplier(Protocol):
    """
    Apply grouped batches to the façade as one atomic operation.

    Must run the post-apply hook (when given) as part of the same operation and
    raise if anything fails; a raise means nothing was applied.
    """

    def apply(
        self,
        facade_name: str,
        environment_id: str,
        batches: Sequence[Batch],
        hook: Optional[PostApplyHook],
    ) -> None:
        ...
