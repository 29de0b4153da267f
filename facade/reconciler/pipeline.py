"""
Reconciler Pipeline - Plan and apply one façade upgrade.

Phases:
    load snapshot
    -> validate (collisions, namespace uses, layouts)     fail closed, no side effects
    -> resolve from content cache -> diff -> protection -> group
    -> deploy cache misses -> apply exactly once           ApplyFailedError leaves the snapshot untouched
    -> rebuild -> append history + namespace mirror -> save

An empty diff over an unchanged provider directory is a true no-op: nothing is
deployed, applied or saved. Adding or dropping a provider without capabilities
still applies (an empty batch list) so the post-apply hook runs.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Mapping, Optional, Sequence

from facade.core.config import Settings, get_settings
from facade.core.exceptions import ApplyFailedError
from facade.core.logging_config import log_batch, log_phase, log_upgrade_end
from facade.core.models import (
    ArtifactId,
    DesiredState,
    DiffOperation,
    HistoryEntry,
    NamespaceRegistry,
    PostApplyHook,
    ProviderRef,
    Snapshot,
)
from facade.reconciler.diff import compute_diff
from facade.reconciler.digest import with_digest
from facade.reconciler.grouping import GroupingResult, group_operations
from facade.reconciler.guard import CORE_CAPABILITIES, check_collisions, check_protection
from facade.reconciler.interfaces import ArtifactSource, BatchApplier, Deployer, SnapshotStore
from facade.reconciler.layout import LayoutField, check_layouts
from facade.reconciler.namespaces import ValidationOptions, validate_namespace_uses
from facade.reconciler.rebuild import rebuild_snapshot
from facade.reconciler.resolver import ContentCache, ProviderResolver, ResolutionTable

logger = logging.getLogger(__name__)

LayoutPairs = Mapping[str, tuple[Sequence[LayoutField], Sequence[LayoutField]]]


def validate_desired_state(
    desired: Sequence[ProviderRef],
    registry: NamespaceRegistry,
    options: ValidationOptions = ValidationOptions(),
    layouts: Optional[LayoutPairs] = None,
) -> None:
    """
    Validation phase: collisions, namespace uses and append-only layouts.

    All checks are pure. The first failure raises; nothing has been touched.
    """
    check_collisions(desired)
    validate_namespace_uses(desired, registry, options)
    check_layouts(layouts or {}, append_only=registry.global_policy.append_only)


@dataclass
class UpgradePlan:
    """Everything computed before the apply step."""
    facade_name: str
    environment_id: str
    snapshot: Snapshot
    providers: List[ProviderRef]
    operations: List[DiffOperation]
    grouping: GroupingResult
    table: ResolutionTable
    registry: NamespaceRegistry
    resolver: ProviderResolver

    @property
    def directory_changed(self) -> bool:
        """Desired artifact ids differ from the recorded provider directory."""
        recorded = {p.artifact_id for p in self.snapshot.providers}
        return recorded != {p.artifact_id for p in self.providers}

    @property
    def is_noop(self) -> bool:
        return not self.operations and not self.directory_changed

    @property
    def resolutions(self) -> dict[ArtifactId, str]:
        return self.table.addresses


@dataclass
class UpgradeResult:
    """Outcome of Reconciler.upgrade()."""
    plan: UpgradePlan
    snapshot: Snapshot
    applied: bool
    grouping: GroupingResult
    deployed: List[ArtifactId] = field(default_factory=list)

    @property
    def state_digest(self) -> str:
        return self.snapshot.state_digest


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Reconciler:
    """
    Plans and applies façade upgrades against injected collaborators.

    Usage:
        reconciler = Reconciler(store, source, deployer, applier)
        plan = reconciler.plan(desired, "staging", registry)      # dry run
        result = reconciler.upgrade(desired, "staging", registry)
    """

    def __init__(
        self,
        store: SnapshotStore,
        source: ArtifactSource,
        deployer: Optional[Deployer] = None,
        applier: Optional[BatchApplier] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.source = source
        self.deployer = deployer
        self.applier = applier
        self.settings = settings or get_settings()
        self.clock = clock or _utc_now

    @property
    def protected_capabilities(self) -> frozenset[str]:
        return CORE_CAPABILITIES | self.settings.validation.extra_protected

    def validation_options(self, registry: NamespaceRegistry) -> ValidationOptions:
        flags = self.settings.validation
        return ValidationOptions(
            strict_uses=flags.strict_uses,
            allow_dual_write=flags.allow_dual_write or registry.global_policy.allow_dual_write,
        )

    def plan(
        self,
        desired: DesiredState,
        environment_id: Optional[str] = None,
        registry: Optional[NamespaceRegistry] = None,
        layouts: Optional[LayoutPairs] = None,
        allow_core_mutation: Optional[bool] = None,
    ) -> UpgradePlan:
        """
        Compute the upgrade without deploying or applying anything.

        Raises:
            ReconcileValidationError subclasses, EmptyPayloadError, InvalidSnapshotError
        """
        facade = desired.facade_name
        env = environment_id or self.settings.store.default_environment
        registry = registry or NamespaceRegistry(facade_name=facade)
        if allow_core_mutation is None:
            allow_core_mutation = self.settings.validation.allow_core_mutation

        log_phase(logger, facade, env, "load", "start")
        snapshot = self.store.load(facade, env)
        providers = list(desired.providers)

        log_phase(logger, facade, env, "validate", f"{len(providers)} provider(s)")
        validate_desired_state(providers, registry, self.validation_options(registry), layouts)

        resolver = ProviderResolver(ContentCache(snapshot.content_cache), self.deployer)
        table = resolver.resolve_cached(providers, self.source)

        operations = compute_diff(snapshot.routing, providers, table.addresses)
        check_protection(operations, self.protected_capabilities, allow_core_mutation)
        grouping = group_operations(operations, table.addresses)
        log_phase(
            logger, facade, env, "plan",
            f"{len(operations)} operation(s), {len(table.unresolved())} provider(s) to deploy",
        )

        return UpgradePlan(
            facade_name=facade,
            environment_id=env,
            snapshot=snapshot,
            providers=providers,
            operations=operations,
            grouping=grouping,
            table=table,
            registry=registry,
            resolver=resolver,
        )

    def upgrade(
        self,
        desired: DesiredState,
        environment_id: Optional[str] = None,
        registry: Optional[NamespaceRegistry] = None,
        layouts: Optional[LayoutPairs] = None,
        hook: Optional[PostApplyHook] = None,
        allow_core_mutation: Optional[bool] = None,
    ) -> UpgradeResult:
        """
        Plan, deploy cache misses, apply once, rebuild and persist.

        Args:
            hook: Overrides the desired document's post_apply_hook

        Raises:
            ApplyFailedError: the apply step failed; the stored snapshot is unchanged
        """
        if self.applier is None:
            raise RuntimeError("Reconciler.upgrade() needs a BatchApplier")

        plan = self.plan(desired, environment_id, registry, layouts, allow_core_mutation)
        facade, env = plan.facade_name, plan.environment_id

        if plan.is_noop:
            log_phase(logger, facade, env, "upgrade", "no-op (routing and providers already match)")
            return UpgradeResult(plan=plan, snapshot=plan.snapshot, applied=False, grouping=plan.grouping)

        log_phase(logger, facade, env, "deploy", f"{len(plan.table.unresolved())} provider(s)")
        plan.resolver.deploy_missing(plan.table)

        # Final addresses are known now; re-derive and re-guard the operations against them
        operations = compute_diff(plan.snapshot.routing, plan.providers, plan.table.addresses)
        check_protection(
            operations,
            self.protected_capabilities,
            self.settings.validation.allow_core_mutation if allow_core_mutation is None else allow_core_mutation,
        )
        grouping = group_operations(operations, plan.table.addresses)
        for batch in grouping.batches:
            log_batch(logger, facade, env, batch.action.value, batch.target, len(batch.capabilities))

        effective_hook = hook if hook is not None else desired.post_apply_hook
        if effective_hook is not None and effective_hook.is_empty:
            effective_hook = None

        log_phase(logger, facade, env, "apply", f"{len(grouping.batches)} batch(es)")
        try:
            self.applier.apply(facade, env, grouping.batches, effective_hook)
        except Exception as e:
            log_upgrade_end(logger, facade, env, False)
            raise ApplyFailedError(e, {"facade": facade, "environment": env}) from e

        rebuilt = rebuild_snapshot(
            plan.snapshot,
            plan.providers,
            plan.table.addresses,
            plan.table.content_hashes,
        )
        counts = grouping.counts
        rebuilt.history.append(HistoryEntry(
            timestamp=self.clock(),
            added=counts.added,
            replaced=counts.replaced,
            removed=counts.removed,
        ))
        rebuilt.namespaces = [ns.model_copy() for ns in plan.registry.namespaces] or rebuilt.namespaces
        rebuilt = with_digest(rebuilt)

        self.store.save(facade, env, rebuilt)
        log_upgrade_end(logger, facade, env, True, counts.added, counts.replaced, counts.removed)
        return UpgradeResult(
            plan=plan,
            snapshot=rebuilt,
            applied=True,
            grouping=grouping,
            deployed=list(plan.table.deployed),
        )
