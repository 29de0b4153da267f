#!/usr/bin/env python
"""
Inspect façade upgrades without applying them.

Usage:
    python scripts/reconcile.py plan desired.yaml --artifacts out/ --env staging
    python scripts/reconcile.py plan desired.yaml --artifacts out/ --registry namespaces.yaml
    python scripts/reconcile.py check-layout --namespace app.v1 old.yaml new.yaml
    python scripts/reconcile.py digest MyFacade --env staging
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from facade.core.config import (
    get_settings,
    load_desired_state,
    load_layout,
    load_namespace_registry,
)
from facade.core.exceptions import FacadeError
from facade.core.logging_config import get_logger, setup_logging
from facade.reconciler import (
    JsonSnapshotStore,
    Reconciler,
    check_append_only,
    compute_state_digest,
    layout_hash,
)
from facade.reconciler.artifacts import DirectoryArtifactSource

logger = get_logger("facade.cli")


def cmd_plan(args) -> int:
    settings = get_settings()
    desired = load_desired_state(args.desired)
    registry = load_namespace_registry(args.registry) if args.registry else None
    store = JsonSnapshotStore(args.snapshot_dir or settings.store.snapshot_dir)
    reconciler = Reconciler(store, DirectoryArtifactSource(args.artifacts), settings=settings)

    plan = reconciler.plan(desired, args.env, registry, allow_core_mutation=args.allow_core_mutation)
    # undeployed providers share ZERO_ADDRESS until deployment; name the units per batch
    owners = {(op.action, op.capability): op.artifact_id for op in plan.operations}
    output = {
        "facade": plan.facade_name,
        "environment": plan.environment_id,
        "current_digest": plan.snapshot.state_digest,
        "operations": [
            {
                "action": op.action.value,
                "capability": op.capability,
                "artifact": str(op.artifact_id) if op.artifact_id else None,
                "previous_provider": op.previous_provider,
            }
            for op in plan.operations
        ],
        "batches": [
            {
                "action": batch.action.value,
                "target": batch.target,
                "capabilities": batch.sorted_capabilities(),
                "artifacts": sorted({
                    str(owners[(batch.action, c)])
                    for c in batch.capabilities
                    if owners.get((batch.action, c)) is not None
                }),
            }
            for batch in plan.grouping.batches
        ],
        "counts": plan.grouping.counts.model_dump(),
        "to_deploy": [str(a) for a in plan.table.unresolved()],
        "provider_directory_changed": plan.directory_changed,
    }
    print(json.dumps(output, indent=2))
    return 0


def cmd_check_layout(args) -> int:
    old = load_layout(args.old)
    new = load_layout(args.new)
    print(f"old: {layout_hash(old)} ({len(old)} fields)")
    print(f"new: {layout_hash(new)} ({len(new)} fields)")
    check_append_only(args.namespace, old, new)
    print("append-only: OK")
    return 0


def cmd_digest(args) -> int:
    settings = get_settings()
    store = JsonSnapshotStore(args.snapshot_dir or settings.store.snapshot_dir)
    env = args.env or settings.store.default_environment
    snapshot = store.load_document(args.facade).get(env)
    if snapshot is None:
        print(f"No snapshot for {args.facade}/{env}")
        return 1
    computed = compute_state_digest(snapshot)
    print(f"stored:   {snapshot.state_digest}")
    print(f"computed: {computed}")
    return 0 if computed == snapshot.state_digest else 1


def main(argv=None):
    parser = argparse.ArgumentParser(description="Façade upgrade reconciler")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")
    parser.add_argument(
        "--snapshot-dir",
        type=Path,
        default=None,
        help="Snapshot directory (default: SNAPSHOT_DIR)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Validate and print the grouped upgrade plan")
    plan.add_argument("desired", type=Path, help="Desired-state document (YAML or JSON)")
    plan.add_argument("--artifacts", "-a", type=Path, required=True, help="Compiled artifacts directory")
    plan.add_argument("--registry", "-r", type=Path, default=None, help="Namespace registry document")
    plan.add_argument("--env", "-e", default=None, help="Environment id (default: DEFAULT_ENVIRONMENT)")
    plan.add_argument(
        "--allow-core-mutation",
        action="store_true",
        default=None,
        help="Permit Replace/Remove of core capabilities",
    )
    plan.set_defaults(func=cmd_plan)

    layout = sub.add_parser("check-layout", help="Check that a namespace layout only grew")
    layout.add_argument("old", type=Path, help="Accepted layout")
    layout.add_argument("new", type=Path, help="Candidate layout")
    layout.add_argument("--namespace", "-n", default="layout", help="Namespace id for messages")
    layout.set_defaults(func=cmd_check_layout)

    digest = sub.add_parser("digest", help="Compare stored and recomputed state digest")
    digest.add_argument("facade", help="Façade name")
    digest.add_argument("--env", "-e", default=None, help="Environment id")
    digest.set_defaults(func=cmd_digest)

    args = parser.parse_args(argv)
    setup_logging(level=args.log_level, log_to_file=False, service_name="facade.cli")

    try:
        return args.func(args)
    except FacadeError as e:
        logger.error(e.message)
        print(f"ERROR: {e.message}", file=sys.stderr)
        return 1
    except (ValueError, OSError) as e:
        # malformed or missing input documents
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
