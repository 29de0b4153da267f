"""Pydantic models for the façade reconciler.

Covers the desired-state document, the per-environment snapshot document and
the namespace registry document, plus the value types the reconciliation core
passes between its phases (diff operations, batches, counts).
"""

from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


ZERO_ADDRESS = "0x" + "0" * 40

CAPABILITY_WIDTH = 4  # bytes
ADDRESS_WIDTH = 20  # bytes


# =============================================================================
# Identifier normalization
# =============================================================================

def _parse_hex(value: Union[str, int, bytes], width: int, kind: str) -> str:
    if isinstance(value, bytes):
        if len(value) > width:
            raise ValueError(f"{kind} wider than {width} bytes: {value.hex()}")
        number = int.from_bytes(value, "big")
    elif isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0x"):
            text = text[2:]
        if not text:
            raise ValueError(f"empty {kind}")
        try:
            number = int(text, 16)
        except ValueError:
            raise ValueError(f"{kind} is not hex: {value!r}") from None
    else:
        raise ValueError(f"unsupported {kind} type: {type(value).__name__}")

    if number < 0 or number >= 1 << (8 * width):
        raise ValueError(f"{kind} out of range for {width} bytes: {value!r}")
    return "0x" + format(number, f"0{width * 2}x")


def capability_id(value: Union[str, int, bytes]) -> str:
    """Normalize a capability id to ``0x`` + 8 lowercase hex digits."""
    return _parse_hex(value, CAPABILITY_WIDTH, "capability id")


def address(value: Union[str, int, bytes, None]) -> str:
    """Normalize an address to ``0x`` + 40 lowercase hex digits (None -> zero)."""
    if value is None:
        return ZERO_ADDRESS
    return _parse_hex(value, ADDRESS_WIDTH, "address")


def is_zero_address(value: Optional[str]) -> bool:
    return value is None or address(value) == ZERO_ADDRESS


# =============================================================================
# Enums
# =============================================================================

class Action(str, Enum):
    """Routing change kinds."""

    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"


ACTION_ORDER = {Action.ADD: 0, Action.REPLACE: 1, Action.REMOVE: 2}


class NamespaceStatus(str, Enum):
    """Lifecycle status of a storage namespace."""

    ACTIVE = "active"
    DEPRECATED = "deprecated"
    REPLACED = "replaced"


# =============================================================================
# Desired state
# =============================================================================

class ArtifactId(BaseModel):
    """Structured artifact name, parsed once at the document boundary.

    Accepts ``"src/facets/Foo.sol:Foo"``, ``"src/facets/Foo.sol"`` (unit is the
    file stem) or a bare ``"Foo"``.
    """

    model_config = ConfigDict(frozen=True)

    module_name: str = ""
    unit_name: str

    @classmethod
    def parse(cls, value: Union[str, "ArtifactId"]) -> "ArtifactId":
        if isinstance(value, ArtifactId):
            return value
        text = str(value).strip()
        if not text:
            raise ValueError("empty artifact id")
        if ":" in text:
            module_name, unit_name = text.rsplit(":", 1)
        elif "/" in text or "." in text:
            module_name, unit_name = text, PurePosixPath(text).stem
        else:
            module_name, unit_name = "", text
        if not unit_name:
            raise ValueError(f"artifact id has no unit name: {value!r}")
        return cls(module_name=module_name, unit_name=unit_name)

    def __str__(self) -> str:
        if self.module_name:
            return f"{self.module_name}:{self.unit_name}"
        return self.unit_name

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.module_name, self.unit_name)


def _artifact_before(value: Any) -> Any:
    if isinstance(value, (str, ArtifactId)):
        return ArtifactId.parse(value)
    return value


class ProviderRef(BaseModel):
    """Desired declaration of one implementation unit."""

    model_config = ConfigDict(frozen=True)

    artifact_id: ArtifactId
    capabilities: frozenset[str] = Field(default_factory=frozenset)
    namespace_uses: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("artifact_id", mode="before")
    @classmethod
    def _parse_artifact(cls, value: Any) -> Any:
        return _artifact_before(value)

    @field_validator("capabilities", mode="before")
    @classmethod
    def _normalize_capabilities(cls, value: Any) -> Any:
        return frozenset(capability_id(item) for item in (value or ()))

    @field_validator("namespace_uses", mode="before")
    @classmethod
    def _normalize_uses(cls, value: Any) -> Any:
        return frozenset(str(item).strip() for item in (value or ()))


class PostApplyHook(BaseModel):
    """Initialization call executed by the applier right after the batch."""

    target: str = ZERO_ADDRESS
    payload: str = "0x"

    @field_validator("target", mode="before")
    @classmethod
    def _normalize_target(cls, value: Any) -> str:
        return address(value)

    @property
    def is_empty(self) -> bool:
        return is_zero_address(self.target) and self.payload in ("", "0x")


class DesiredState(BaseModel):
    """Desired-state document: façade name, providers and optional post-apply hook."""

    facade_name: str
    providers: list[ProviderRef] = Field(default_factory=list)
    post_apply_hook: Optional[PostApplyHook] = None

    @model_validator(mode="after")
    def _unique_artifacts(self) -> "DesiredState":
        seen: set[ArtifactId] = set()
        for provider in self.providers:
            if provider.artifact_id in seen:
                raise ValueError(f"provider {provider.artifact_id} declared twice")
            seen.add(provider.artifact_id)
        return self


# =============================================================================
# Namespace registry
# =============================================================================

class NamespaceConfig(BaseModel):
    """Lifecycle record for one storage namespace."""

    namespace_id: str
    version: int = 1
    status: NamespaceStatus = NamespaceStatus.ACTIVE
    superseded_by: Optional[str] = None


class NamespacePolicy(BaseModel):
    """Registry-wide policy flags."""

    append_only: bool = True
    allow_dual_write: bool = False


class NamespaceRegistry(BaseModel):
    """Namespace registry document."""

    facade_name: str = ""
    namespaces: list[NamespaceConfig] = Field(default_factory=list)
    global_policy: NamespacePolicy = Field(default_factory=NamespacePolicy)

    @model_validator(mode="after")
    def _check_successors(self) -> "NamespaceRegistry":
        known = {ns.namespace_id for ns in self.namespaces}
        if len(known) != len(self.namespaces):
            raise ValueError("duplicate namespace id in registry")
        for ns in self.namespaces:
            if ns.status == NamespaceStatus.REPLACED and not ns.superseded_by:
                raise ValueError(f"namespace {ns.namespace_id} is replaced but names no successor")
            if ns.superseded_by and ns.superseded_by not in known:
                raise ValueError(
                    f"namespace {ns.namespace_id} superseded by unknown namespace {ns.superseded_by}"
                )
        return self

    def get(self, namespace_id: str) -> Optional[NamespaceConfig]:
        for ns in self.namespaces:
            if ns.namespace_id == namespace_id:
                return ns
        return None


# =============================================================================
# Snapshot
# =============================================================================

class RoutingEntry(BaseModel):
    """One row of the routing table."""

    capability: str
    provider: str

    @field_validator("capability", mode="before")
    @classmethod
    def _normalize_capability(cls, value: Any) -> str:
        return capability_id(value)

    @field_validator("provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value: Any) -> str:
        return address(value)


class ProviderSnapshot(BaseModel):
    """Recorded facts about a deployed provider."""

    artifact_id: ArtifactId
    address: str
    content_hash: str
    capabilities: list[str] = Field(default_factory=list)

    @field_validator("artifact_id", mode="before")
    @classmethod
    def _parse_artifact(cls, value: Any) -> Any:
        return _artifact_before(value)

    @field_validator("address", mode="before")
    @classmethod
    def _normalize_address(cls, value: Any) -> str:
        return address(value)

    @field_validator("capabilities", mode="before")
    @classmethod
    def _sorted_capabilities(cls, value: Any) -> list[str]:
        return sorted({capability_id(item) for item in (value or ())})


class ContentCacheEntry(BaseModel):
    """Reuse index row: one address per content hash."""

    content_hash: str
    address: str

    @field_validator("address", mode="before")
    @classmethod
    def _normalize_address(cls, value: Any) -> str:
        return address(value)


class HistoryEntry(BaseModel):
    """Counts and timestamp of one applied batch."""

    timestamp: datetime
    added: int = 0
    replaced: int = 0
    removed: int = 0


class Snapshot(BaseModel):
    """Full recorded state of one façade environment."""

    routing: list[RoutingEntry] = Field(default_factory=list)
    providers: list[ProviderSnapshot] = Field(default_factory=list)
    content_cache: list[ContentCacheEntry] = Field(default_factory=list)
    namespaces: list[NamespaceConfig] = Field(default_factory=list)
    history: list[HistoryEntry] = Field(default_factory=list)
    state_digest: str = ""

    def routing_map(self) -> dict[str, str]:
        return {entry.capability: entry.provider for entry in self.routing}

    def provider_for(self, artifact_id: ArtifactId) -> Optional[ProviderSnapshot]:
        for provider in self.providers:
            if provider.artifact_id == artifact_id:
                return provider
        return None


class EnvironmentSnapshot(BaseModel):
    """Snapshot of one environment inside a snapshot document."""

    environment_id: str
    snapshot: Snapshot = Field(default_factory=Snapshot)


class SnapshotDocument(BaseModel):
    """All recorded environments for one façade."""

    facade_name: str
    per_environment: list[EnvironmentSnapshot] = Field(default_factory=list)

    def get(self, environment_id: str) -> Optional[Snapshot]:
        for entry in self.per_environment:
            if entry.environment_id == environment_id:
                return entry.snapshot
        return None

    def put(self, environment_id: str, snapshot: Snapshot) -> None:
        for entry in self.per_environment:
            if entry.environment_id == environment_id:
                entry.snapshot = snapshot
                return
        self.per_environment.append(EnvironmentSnapshot(environment_id=environment_id, snapshot=snapshot))


# =============================================================================
# Reconciliation values
# =============================================================================

class DiffOperation(BaseModel):
    """One per-capability routing change."""

    model_config = ConfigDict(frozen=True)

    action: Action
    capability: str
    artifact_id: Optional[ArtifactId] = None  # None for Remove
    previous_provider: Optional[str] = None  # current owner for Replace/Remove

    @property
    def sort_key(self) -> tuple:
        artifact = self.artifact_id.sort_key if self.artifact_id else ("", "")
        return (self.capability, ACTION_ORDER[self.action], artifact)


class OperationCounts(BaseModel):
    """Running totals across all batches."""

    added: int = 0
    replaced: int = 0
    removed: int = 0

    @property
    def total(self) -> int:
        return self.added + self.replaced + self.removed


class Batch(BaseModel):
    """A grouped, atomically-applied set of routing changes for one (target, action)."""

    model_config = ConfigDict(frozen=True)

    target: str
    action: Action
    capabilities: frozenset[str]

    def sorted_capabilities(self) -> list[str]:
        return sorted(self.capabilities)
