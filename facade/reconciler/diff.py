"""
Capability Registry Diff - Compute routing changes between recorded and desired state.

Pure function: no I/O, no mutation of inputs. The emitted list is in canonical
order (capability id, action, artifact id) so the same current/desired sets
always produce the same operations whatever order they were supplied in.
"""

import logging
from typing import Iterable, Mapping, Optional, Union

from facade.core.exceptions import InvalidSnapshotError
from facade.core.models import (
    Action,
    ArtifactId,
    DiffOperation,
    ProviderRef,
    RoutingEntry,
    address,
    is_zero_address,
)

logger = logging.getLogger(__name__)

CurrentRouting = Union[Iterable[RoutingEntry], Mapping[str, str]]


def routing_index(current: CurrentRouting) -> dict[str, str]:
    """
    Index the current routing table by capability id.

    Raises:
        InvalidSnapshotError: if one capability is routed to two different providers
    """
    if isinstance(current, Mapping):
        current = [RoutingEntry(capability=k, provider=v) for k, v in current.items()]

    index: dict[str, str] = {}
    for entry in current:
        owner = index.get(entry.capability)
        if owner is not None and owner != entry.provider:
            raise InvalidSnapshotError(
                f"Capability {entry.capability} routed to both {owner} and {entry.provider}",
                {"capability": entry.capability, "providers": [owner, entry.provider]},
            )
        index[entry.capability] = entry.provider
    return index


def resolved_target(resolutions: Mapping[ArtifactId, str], artifact_id: ArtifactId) -> Optional[str]:
    """Return the known address for an artifact, or None while it is undeployed."""
    target = resolutions.get(artifact_id)
    if is_zero_address(target):
        return None
    return address(target)


def compute_diff(
    current: CurrentRouting,
    desired: Iterable[ProviderRef],
    resolutions: Mapping[ArtifactId, str],
) -> list[DiffOperation]:
    """
    Compute Add/Replace/Remove operations that turn `current` into `desired`.

    Args:
        current: Recorded routing table (entries or capability -> address map)
        desired: Desired provider declarations
        resolutions: artifact id -> deployed address (zero/missing = not yet deployed)

    Returns:
        Operations in canonical order. An already-correct route is omitted.
    """
    owners = routing_index(current)
    operations: list[DiffOperation] = []
    wanted: set[str] = set()

    for provider in desired:
        target = resolved_target(resolutions, provider.artifact_id)
        for capability in provider.capabilities:
            wanted.add(capability)
            owner = owners.get(capability)
            if owner is None:
                operations.append(DiffOperation(
                    action=Action.ADD,
                    capability=capability,
                    artifact_id=provider.artifact_id,
                ))
            elif target is not None and target == owner:
                continue
            else:
                operations.append(DiffOperation(
                    action=Action.REPLACE,
                    capability=capability,
                    artifact_id=provider.artifact_id,
                    previous_provider=owner,
                ))

    for capability, owner in owners.items():
        if capability not in wanted:
            operations.append(DiffOperation(
                action=Action.REMOVE,
                capability=capability,
                previous_provider=owner,
            ))

    operations.sort(key=lambda op: op.sort_key)
    logger.debug(f"Diff: {len(operations)} operation(s) over {len(owners)} current route(s)")
    return operations
