"""
Namespace Compatibility Validator.

Checks each provider's declared storage namespaces against the registry's
lifecycle status. Rules, per provider:

1. strict_uses and no declared namespace          -> UsesMissingError
2. declared namespace unknown to the registry     -> NamespaceMissingError
3. declared namespace is Replaced, no dual write  -> NamespaceRetiredError
4. namespace declared together with its successor,
   no dual write                                   -> NamespaceRetiredError

Providers are checked in artifact-id order and namespaces in id order, so the
reported error does not depend on document ordering.
"""

import logging
from dataclasses import dataclass
from itertools import combinations
from typing import Iterable

from facade.core.exceptions import (
    NamespaceMissingError,
    NamespaceRetiredError,
    UsesMissingError,
)
from facade.core.models import NamespaceRegistry, NamespaceStatus, ProviderRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationOptions:
    """Flags for namespace validation."""
    strict_uses: bool = False
    allow_dual_write: bool = False


def validate_namespace_uses(
    desired: Iterable[ProviderRef],
    registry: NamespaceRegistry,
    options: ValidationOptions = ValidationOptions(),
) -> None:
    """
    Validate namespace declarations of every desired provider.

    Raises:
        UsesMissingError, NamespaceMissingError, NamespaceRetiredError
    """
    configs = {ns.namespace_id: ns for ns in registry.namespaces}

    for provider in sorted(desired, key=lambda p: p.artifact_id.sort_key):
        name = str(provider.artifact_id)
        uses = sorted(provider.namespace_uses)

        if not uses:
            if options.strict_uses:
                raise UsesMissingError(name)
            continue

        for namespace_id in uses:
            config = configs.get(namespace_id)
            if config is None:
                raise NamespaceMissingError(namespace_id, name)
            if config.status == NamespaceStatus.REPLACED and not options.allow_dual_write:
                raise NamespaceRetiredError(namespace_id, config.superseded_by, name)

        if options.allow_dual_write:
            continue

        for first, second in combinations(uses, 2):
            for older, newer in ((first, second), (second, first)):
                if configs[older].superseded_by == newer:
                    raise NamespaceRetiredError(older, newer, name)

    logger.debug(f"Namespace uses valid against {len(configs)} registered namespace(s)")
