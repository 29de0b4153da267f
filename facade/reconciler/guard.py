"""
Collision & Protection Guard.

Two independent, order-independent checks:
- No-collision: desired providers must declare disjoint capability sets.
  Runs against the desired set, before the diff is trusted.
- Protection: core capabilities (the administration surface of the façade
  itself) must never be replaced or removed unless explicitly unlocked.
  Runs against the concrete Replace/Remove operations of a diff.
"""

import logging
from typing import Iterable, Optional

from facade.core.exceptions import CollisionError, ProtectedCapabilityError
from facade.core.models import Action, DiffOperation, ProviderRef

logger = logging.getLogger(__name__)


# Built-in administration surface, keyed by capability id
CORE_CAPABILITY_NAMES = {
    "0x1f931c1c": "diamondCut",
    "0x7a0ed627": "facets",
    "0xadfca15e": "facetFunctionSelectors",
    "0x52ef6b2c": "facetAddresses",
    "0xcdffacc6": "facetAddress",
    "0x01ffc9a7": "supportsInterface",
    "0x8da5cb5b": "owner",
    "0xf2fde38b": "transferOwnership",
}

CORE_CAPABILITIES = frozenset(CORE_CAPABILITY_NAMES)


def check_collisions(desired: Iterable[ProviderRef]) -> None:
    """
    Fail if two distinct desired providers declare the same capability id.

    The reported collision is canonical: the lowest colliding capability id,
    with the two lowest artifact ids that declare it, in sorted order.

    Raises:
        CollisionError
    """
    declared: dict[str, list] = {}
    for provider in desired:
        for capability in provider.capabilities:
            declared.setdefault(capability, []).append(provider.artifact_id)

    for capability in sorted(declared):
        owners = sorted(set(declared[capability]), key=lambda a: a.sort_key)
        if len(owners) > 1:
            raise CollisionError(
                capability,
                str(owners[0]),
                str(owners[1]),
                {"providers": [str(owner) for owner in owners]},
            )


def check_protection(
    operations: Iterable[DiffOperation],
    protected: Optional[Iterable[str]] = None,
    allow_core_mutation: bool = False,
) -> None:
    """
    Fail if any Replace/Remove touches a protected capability.

    Args:
        operations: Diff result
        protected: Protected ids (default: CORE_CAPABILITIES)
        allow_core_mutation: Explicit override flag

    Raises:
        ProtectedCapabilityError: naming the lowest offending capability id
    """
    guarded = CORE_CAPABILITIES if protected is None else frozenset(protected)
    offending = sorted(
        (op for op in operations if op.action != Action.ADD and op.capability in guarded),
        key=lambda op: op.sort_key,
    )
    if not offending:
        return
    if allow_core_mutation:
        logger.warning(
            f"Core mutation override active: {len(offending)} protected operation(s) allowed "
            f"({', '.join(op.capability for op in offending)})"
        )
        return

    op = offending[0]
    raise ProtectedCapabilityError(
        op.capability,
        op.action.value,
        {"name": CORE_CAPABILITY_NAMES.get(op.capability)},
    )
