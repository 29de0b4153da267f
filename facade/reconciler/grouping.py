"""
Operation Grouping - Merge per-capability operations into atomic batches.

Batches are keyed by (target address, action). Remove has no target and is
grouped under ZERO_ADDRESS. Membership of each batch depends only on the
operation multiset and the resolution table; the emitted batch order
(Add, Replace, Remove, then target) is stable as well.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping

from facade.core.models import (
    ACTION_ORDER,
    Action,
    ArtifactId,
    Batch,
    DiffOperation,
    OperationCounts,
    ZERO_ADDRESS,
    address,
)

logger = logging.getLogger(__name__)


@dataclass
class GroupingResult:
    """Grouped batches plus Add/Replace/Remove totals."""
    batches: List[Batch] = field(default_factory=list)
    counts: OperationCounts = field(default_factory=OperationCounts)

    @property
    def is_empty(self) -> bool:
        return not self.batches


def batch_target(operation: DiffOperation, resolutions: Mapping[ArtifactId, str]) -> str:
    """Target address of an operation; Remove and unresolved targets map to ZERO_ADDRESS."""
    if operation.action == Action.REMOVE or operation.artifact_id is None:
        return ZERO_ADDRESS
    return address(resolutions.get(operation.artifact_id))


def group_operations(
    operations: Iterable[DiffOperation],
    resolutions: Mapping[ArtifactId, str],
) -> GroupingResult:
    """
    Group diff operations into per-(target, action) batches.

    Args:
        operations: Ungrouped diff operations
        resolutions: artifact id -> deployed address

    Returns:
        GroupingResult with one Batch per (target, action) and the tallies
    """
    members: dict[tuple[str, Action], set[str]] = {}
    for op in operations:
        key = (batch_target(op, resolutions), op.action)
        members.setdefault(key, set()).add(op.capability)

    counts = OperationCounts()
    batches = []
    for (target, action) in sorted(members, key=lambda k: (ACTION_ORDER[k[1]], k[0])):
        capabilities = frozenset(members[(target, action)])
        batches.append(Batch(target=target, action=action, capabilities=capabilities))
        if action == Action.ADD:
            counts.added += len(capabilities)
        elif action == Action.REPLACE:
            counts.replaced += len(capabilities)
        else:
            counts.removed += len(capabilities)

    logger.debug(
        f"Grouped into {len(batches)} batch(es): "
        f"+{counts.added} ~{counts.replaced} -{counts.removed}"
    )
    return GroupingResult(batches=batches, counts=counts)
