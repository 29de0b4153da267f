"""Deterministic state digest over a snapshot."""

import hashlib
import json
from typing import Any, Dict

from facade.core.models import Snapshot


def canonical_state(snapshot: Snapshot) -> Dict[str, Any]:
    """
    Snapshot content in a fixed field order with every collection sorted.

    History keeps its recorded order; everything else is sorted so two
    snapshots with the same logical content serialize identically.
    """
    return {
        "routing": [
            [entry.capability, entry.provider]
            for entry in sorted(snapshot.routing, key=lambda e: e.capability)
        ],
        "providers": [
            [str(p.artifact_id), p.address, p.content_hash, sorted(p.capabilities)]
            for p in sorted(snapshot.providers, key=lambda p: p.artifact_id.sort_key)
        ],
        "content_cache": [
            [entry.content_hash, entry.address]
            for entry in sorted(snapshot.content_cache, key=lambda e: e.content_hash)
        ],
        "namespaces": [
            [ns.namespace_id, ns.version, ns.status.value, ns.superseded_by]
            for ns in sorted(snapshot.namespaces, key=lambda n: n.namespace_id)
        ],
        "history": [
            [h.timestamp.isoformat(), h.added, h.replaced, h.removed]
            for h in snapshot.history
        ],
    }


def compute_state_digest(snapshot: Snapshot) -> str:
    """SHA-256 over the canonical state (the stored digest itself is excluded)."""
    encoded = json.dumps(
        canonical_state(snapshot),
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return "0x" + hashlib.sha256(encoded).hexdigest()


def with_digest(snapshot: Snapshot) -> Snapshot:
    """Copy of `snapshot` with state_digest recomputed."""
    return snapshot.model_copy(update={"state_digest": compute_state_digest(snapshot)})
