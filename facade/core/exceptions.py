"""Custom exceptions for the façade reconciler."""

from typing import Any, Optional


class FacadeError(Exception):
    """Base exception for the façade reconciler."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ReconcileValidationError(FacadeError):
    """
    Validation errors detected before any apply attempt.

    Raising one of these aborts the whole reconciliation with no side effects.
    """

    pass


class CollisionError(ReconcileValidationError):
    """Two desired providers declare the same capability id."""

    def __init__(
        self,
        capability: str,
        provider_a: str,
        provider_b: str,
        context: Optional[dict[str, Any]] = None,
    ):
        message = f"Capability {capability} declared by both {provider_a} and {provider_b}"
        super().__init__(message, context)
        self.capability = capability
        self.provider_a = provider_a
        self.provider_b = provider_b


class ProtectedCapabilityError(ReconcileValidationError):
    """A core capability would be replaced or removed without an override."""

    def __init__(
        self,
        capability: str,
        action: str = "",
        context: Optional[dict[str, Any]] = None,
    ):
        verb = f" ({action})" if action else ""
        message = f"Protected capability {capability} cannot be mutated{verb}"
        super().__init__(message, context)
        self.capability = capability
        self.action = action


class NamespaceMissingError(ReconcileValidationError):
    """A provider uses a namespace the registry does not know."""

    def __init__(
        self,
        namespace_id: str,
        provider: str = "",
        context: Optional[dict[str, Any]] = None,
    ):
        owner = f" (used by {provider})" if provider else ""
        message = f"Namespace missing: {namespace_id}{owner}"
        super().__init__(message, context)
        self.namespace_id = namespace_id
        self.provider = provider


class NamespaceRetiredError(ReconcileValidationError):
    """A provider uses a replaced namespace, or a namespace together with its successor."""

    def __init__(
        self,
        namespace_id: str,
        superseded_by: Optional[str],
        provider: str = "",
        context: Optional[dict[str, Any]] = None,
    ):
        owner = f" (used by {provider})" if provider else ""
        message = f"Namespace replaced: {namespace_id} -> {superseded_by}{owner}"
        super().__init__(message, context)
        self.namespace_id = namespace_id
        self.superseded_by = superseded_by
        self.provider = provider


class UsesMissingError(ReconcileValidationError):
    """Strict mode requires every provider to declare at least one namespace."""

    def __init__(self, provider: str, context: Optional[dict[str, Any]] = None):
        message = f"Uses missing: {provider} declares no storage namespace"
        super().__init__(message, context)
        self.provider = provider


class LayoutIncompatibleError(ReconcileValidationError):
    """A namespace layout did not grow append-only."""

    def __init__(
        self,
        namespace_id: str,
        field_index: int,
        attribute: str,
        context: Optional[dict[str, Any]] = None,
    ):
        message = (
            f"Layout of {namespace_id} is not append-only: "
            f"field {field_index} changed {attribute}"
        )
        super().__init__(message, context)
        self.namespace_id = namespace_id
        self.field_index = field_index
        self.attribute = attribute


class UnresolvedProviderError(FacadeError):
    """
    A provider still has no deployed address (or content hash) at rebuild time.

    This is an upstream deployment bug, not a user error.
    """

    def __init__(self, provider: str, context: Optional[dict[str, Any]] = None):
        message = f"Provider {provider} is unresolved"
        super().__init__(message, context)
        self.provider = provider


class EmptyPayloadError(FacadeError):
    """Compiled payload for a provider is empty or unreadable."""

    def __init__(self, provider: str, context: Optional[dict[str, Any]] = None):
        message = f"Empty payload for {provider}"
        super().__init__(message, context)
        self.provider = provider


class InvalidArtifactError(FacadeError):
    """Deployment returned a degenerate (zero or empty) address."""

    def __init__(self, provider: str, context: Optional[dict[str, Any]] = None):
        message = f"Invalid artifact: deploying {provider} returned no address"
        super().__init__(message, context)
        self.provider = provider


class InvalidSnapshotError(FacadeError):
    """Stored snapshot is inconsistent (duplicate routes, digest mismatch, bad document)."""

    pass


class ApplyFailedError(FacadeError):
    """
    The atomic batch application failed.

    The previous snapshot stays authoritative; nothing is persisted.
    """

    def __init__(self, cause: BaseException, context: Optional[dict[str, Any]] = None):
        message = f"Batch apply failed: {cause}"
        super().__init__(message, context)
        self.cause = cause
