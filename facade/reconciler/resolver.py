"""
Content-Addressed Provider Resolver.

Deployments are cached by the hash of the compiled payload, not by name: two
artifact ids compiling to identical bytes share one deployed address, and a
provider recompiled to identical bytes reuses its prior address. The cache is
append-only; the first address recorded for a hash wins.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

from facade.core.exceptions import EmptyPayloadError, InvalidArtifactError
from facade.core.models import (
    ArtifactId,
    ContentCacheEntry,
    ProviderRef,
    ZERO_ADDRESS,
    address,
    is_zero_address,
)
from facade.reconciler.interfaces import ArtifactSource, Deployer

logger = logging.getLogger(__name__)


def content_hash(payload: bytes) -> str:
    """SHA-256 of a compiled payload, 0x-prefixed hex."""
    return "0x" + hashlib.sha256(payload).hexdigest()


def payload_bytes(artifact_id: ArtifactId, payload: Union[bytes, str, None]) -> bytes:
    """Normalize a payload (bytes or 0x-hex) and reject empty ones."""
    if isinstance(payload, str):
        text = payload.strip()
        if text.startswith(("0x", "0X")):
            text = text[2:]
        try:
            payload = bytes.fromhex(text)
        except ValueError as e:
            raise EmptyPayloadError(str(artifact_id), {"reason": f"unreadable hex: {e}"}) from e
    if not payload:
        raise EmptyPayloadError(str(artifact_id))
    return bytes(payload)


class ContentCache:
    """Append-only content hash -> address index (insertion order preserved)."""

    def __init__(self, entries: Optional[Iterable[ContentCacheEntry]] = None):
        self._entries: Dict[str, str] = {}
        for entry in entries or ():
            self.record(entry.content_hash, entry.address)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, digest: str) -> bool:
        return digest in self._entries

    def get(self, digest: str) -> Optional[str]:
        return self._entries.get(digest)

    def record(self, digest: str, deployed_at: str) -> bool:
        """Record a mapping; returns False (and keeps the old address) if the hash is known."""
        if digest in self._entries:
            return False
        self._entries[digest] = address(deployed_at)
        return True

    def entries(self) -> List[ContentCacheEntry]:
        return [ContentCacheEntry(content_hash=h, address=a) for h, a in self._entries.items()]


@dataclass
class Resolution:
    """Outcome of resolving one provider."""
    artifact_id: ArtifactId
    address: str
    deployed: bool
    content_hash: str


@dataclass
class ResolutionTable:
    """Per-artifact addresses and content hashes for one reconciliation pass."""
    addresses: Dict[ArtifactId, str] = field(default_factory=dict)
    content_hashes: Dict[ArtifactId, str] = field(default_factory=dict)
    payloads: Dict[ArtifactId, bytes] = field(default_factory=dict)
    deployed: List[ArtifactId] = field(default_factory=list)

    def unresolved(self) -> List[ArtifactId]:
        missing = [a for a, addr in self.addresses.items() if is_zero_address(addr)]
        return sorted(missing, key=lambda a: a.sort_key)


class ProviderResolver:
    """
    Resolve provider payloads to deployed addresses through the content cache.

    Usage:
        resolver = ProviderResolver(ContentCache(snapshot.content_cache), deployer)
        table = resolver.resolve_cached(desired, source)   # no side effects
        resolver.deploy_missing(table)                     # deploys cache misses only
    """

    def __init__(self, cache: ContentCache, deployer: Optional[Deployer] = None):
        self.cache = cache
        self.deployer = deployer

    def lookup(self, digest: str) -> Optional[str]:
        return self.cache.get(digest)

    def resolve_or_deploy(self, artifact_id: ArtifactId, payload: Union[bytes, str]) -> Resolution:
        """
        Reuse the cached address for the payload's hash, or deploy and record it.

        Raises:
            EmptyPayloadError: payload is empty or unreadable
            InvalidArtifactError: deployer returned a zero/empty address
        """
        data = payload_bytes(artifact_id, payload)
        digest = content_hash(data)

        cached = self.cache.get(digest)
        if cached is not None:
            logger.debug(f"Cache hit for {artifact_id}: {digest[:18]} -> {cached}")
            return Resolution(artifact_id, cached, False, digest)

        if self.deployer is None:
            raise RuntimeError("ProviderResolver has no deployer configured")

        raw = self.deployer.deploy(artifact_id, data)
        try:
            deployed_at = address(raw) if raw else ZERO_ADDRESS
        except ValueError as e:
            raise InvalidArtifactError(str(artifact_id), {"returned": repr(raw)}) from e
        if deployed_at == ZERO_ADDRESS:
            raise InvalidArtifactError(str(artifact_id), {"returned": repr(raw)})

        self.cache.record(digest, deployed_at)
        logger.info(f"Deployed {artifact_id} at {deployed_at} (hash {digest[:18]})")
        return Resolution(artifact_id, deployed_at, True, digest)

    def resolve_cached(self, desired: Iterable[ProviderRef], source: ArtifactSource) -> ResolutionTable:
        """
        Resolve every desired provider from the cache only.

        Cache misses stay at ZERO_ADDRESS until deploy_missing() runs.
        """
        table = ResolutionTable()
        for provider in sorted(desired, key=lambda p: p.artifact_id.sort_key):
            artifact_id = provider.artifact_id
            try:
                raw = source.load_payload(artifact_id)
            except (OSError, ValueError) as e:
                # missing file, broken JSON or undecodable text
                raise EmptyPayloadError(str(artifact_id), {"reason": str(e)}) from e
            data = payload_bytes(artifact_id, raw)
            digest = content_hash(data)
            table.payloads[artifact_id] = data
            table.content_hashes[artifact_id] = digest
            table.addresses[artifact_id] = self.cache.get(digest) or ZERO_ADDRESS
        return table

    def deploy_missing(self, table: ResolutionTable) -> ResolutionTable:
        """Deploy every unresolved provider in `table`, updating it in place."""
        for artifact_id in table.unresolved():
            resolution = self.resolve_or_deploy(artifact_id, table.payloads[artifact_id])
            table.addresses[artifact_id] = resolution.address
            if resolution.deployed:
                table.deployed.append(artifact_id)
        return table
