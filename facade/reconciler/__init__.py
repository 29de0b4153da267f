"""
Façade Reconciler - Compute, validate and apply routing upgrades.

Reconciles a recorded snapshot of a façade's capability routing table with a
newly declared desired state:
- Diff current routes against desired providers (Add / Replace / Remove)
- Guard against capability collisions and mutation of core capabilities
- Validate storage namespace uses and append-only layouts
- Group operations into atomic batches
- Resolve providers through a content-hash deployment cache
- Rebuild and digest the next snapshot after a successful apply

Usage:
    from facade.reconciler import Reconciler, JsonSnapshotStore

    reconciler = Reconciler(JsonSnapshotStore("state"), source, deployer, applier)
    result = reconciler.upgrade(desired, "staging", registry)
"""

from facade.reconciler.diff import compute_diff

from facade.reconciler.guard import (
    CORE_CAPABILITIES,
    check_collisions,
    check_protection,
)

from facade.reconciler.namespaces import (
    ValidationOptions,
    validate_namespace_uses,
)

from facade.reconciler.layout import (
    LayoutField,
    check_append_only,
    check_layouts,
    layout_hash,
)

from facade.reconciler.grouping import (
    GroupingResult,
    group_operations,
)

from facade.reconciler.resolver import (
    ContentCache,
    ProviderResolver,
    Resolution,
    ResolutionTable,
    content_hash,
)

from facade.reconciler.digest import compute_state_digest, with_digest

from facade.reconciler.rebuild import rebuild_snapshot

from facade.reconciler.store import (
    JsonSnapshotStore,
    MemorySnapshotStore,
    empty_snapshot,
)

from facade.reconciler.pipeline import (
    Reconciler,
    UpgradePlan,
    UpgradeResult,
    validate_desired_state,
)

__all__ = [
    # Diff
    "compute_diff",
    # Guard
    "CORE_CAPABILITIES",
    "check_collisions",
    "check_protection",
    # Namespaces
    "ValidationOptions",
    "validate_namespace_uses",
    # Layout
    "LayoutField",
    "check_append_only",
    "check_layouts",
    "layout_hash",
    # Grouping
    "GroupingResult",
    "group_operations",
    # Resolver
    "ContentCache",
    "ProviderResolver",
    "Resolution",
    "ResolutionTable",
    "content_hash",
    # Snapshot
    "compute_state_digest",
    "with_digest",
    "rebuild_snapshot",
    "JsonSnapshotStore",
    "MemorySnapshotStore",
    "empty_snapshot",
    # Pipeline
    "Reconciler",
    "UpgradePlan",
    "UpgradeResult",
    "validate_desired_state",
]
