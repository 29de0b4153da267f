"""
Snapshot Rebuilder - Reconstruct the recorded state after a successful apply.

Routing and provider records are rebuilt from the desired declarations and
their resolved addresses; the content cache is merged append-only; the
namespace mirror and history are carried forward unchanged (the pipeline
appends to them separately). The digest is recomputed last.
"""

import logging
from typing import Iterable, Mapping

from facade.core.exceptions import UnresolvedProviderError
from facade.core.models import (
    ArtifactId,
    ContentCacheEntry,
    ProviderRef,
    ProviderSnapshot,
    RoutingEntry,
    Snapshot,
    is_zero_address,
)
from facade.reconciler.digest import with_digest
from facade.reconciler.resolver import ContentCache

logger = logging.getLogger(__name__)


def merge_content_cache(
    existing: Iterable[ContentCacheEntry],
    additions: Iterable[ContentCacheEntry],
) -> list[ContentCacheEntry]:
    """Old entries first, in order; new hashes appended; known hashes never overwritten."""
    cache = ContentCache(existing)
    for entry in additions:
        cache.record(entry.content_hash, entry.address)
    return cache.entries()


def rebuild_snapshot(
    current: Snapshot,
    desired: Iterable[ProviderRef],
    resolutions: Mapping[ArtifactId, str],
    content_hashes: Mapping[ArtifactId, str],
) -> Snapshot:
    """
    Build the next snapshot from the desired state and final resolutions.

    A provider whose content hash is not supplied keeps the hash recorded for
    it in `current`.

    Raises:
        UnresolvedProviderError: a target address (or content hash) is still unknown
    """
    providers = sorted(desired, key=lambda p: p.artifact_id.sort_key)
    routing: list[RoutingEntry] = []
    records: list[ProviderSnapshot] = []
    additions: list[ContentCacheEntry] = []

    for provider in providers:
        artifact_id = provider.artifact_id
        target = resolutions.get(artifact_id)
        if is_zero_address(target):
            raise UnresolvedProviderError(str(artifact_id), {"reason": "no deployed address"})

        digest = content_hashes.get(artifact_id)
        if not digest:
            previous = current.provider_for(artifact_id)
            if previous is None or not previous.content_hash:
                raise UnresolvedProviderError(str(artifact_id), {"reason": "no content hash"})
            digest = previous.content_hash

        capabilities = sorted(provider.capabilities)
        records.append(ProviderSnapshot(
            artifact_id=artifact_id,
            address=target,
            content_hash=digest,
            capabilities=capabilities,
        ))
        routing.extend(RoutingEntry(capability=c, provider=target) for c in capabilities)
        additions.append(ContentCacheEntry(content_hash=digest, address=target))

    routing.sort(key=lambda entry: entry.capability)
    rebuilt = Snapshot(
        routing=routing,
        providers=records,
        content_cache=merge_content_cache(current.content_cache, additions),
        namespaces=[ns.model_copy() for ns in current.namespaces],
        history=[h.model_copy() for h in current.history],
    )
    rebuilt = with_digest(rebuilt)
    logger.debug(
        f"Rebuilt snapshot: {len(routing)} route(s), {len(records)} provider(s), "
        f"{len(rebuilt.content_cache)} cache entr(ies), digest {rebuilt.state_digest[:18]}"
    )
    return rebuilt
