"""Error taxonomy for provisioning, reconciliation and teardown.

Every error raised by the engine derives from NicError so the CLI can turn
it into an actionable message. Absence of a resource is not an error:
discovery returns None for that case.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


class NicError(Exception):
    """Base class for all engine errors."""

    pass


class ConfigLoadError(NicError):
    """Raised when the platform configuration file cannot be loaded."""

    pass


class ConfigValidationError(NicError):
    """Raised when a provider rejects a configuration before any API call."""

    def __init__(self, errors: Sequence[str], provider: str = "") -> None:
        self.errors = list(errors)
        self.provider = provider
        prefix = f"{provider} configuration" if provider else "Configuration"
        super().__init__(f"{prefix} validation failed:\n  - " + "\n  - ".join(self.errors))


class ImmutableFieldViolation(NicError):
    """Raised when desired configuration changes a field that cannot be updated in place."""

    def __init__(self, kind: str, identity: str, field: str, actual: Any, desired: Any) -> None:
        self.kind = kind
        self.identity = identity
        self.field = field
        self.actual = actual
        self.desired = desired
        super().__init__(
            f"{kind} '{identity}': field '{field}' is immutable "
            f"(actual: {actual!r}, desired: {desired!r}). "
            "Destroy and recreate the resource to apply this change"
        )


class AmbiguousStateError(NicError):
    """Raised when discovery finds more than one resource where at most one was expected."""

    def __init__(self, kind: str, identity: str, matches: Sequence[str]) -> None:
        self.kind = kind
        self.identity = identity
        self.matches = list(matches)
        super().__init__(
            f"Found {len(self.matches)} {kind} resources tagged for '{identity}' "
            f"where at most one was expected: {', '.join(self.matches)}"
        )


class NotRegisteredError(NicError):
    """Raised when a registry has no implementation bound to a name."""

    def __init__(self, name: str, kind: str = "provider", available: Sequence[str] = ()) -> None:
        self.name = name
        self.kind = kind
        self.available = sorted(available)
        hint = f" (available: {', '.join(self.available)})" if self.available else ""
        super().__init__(f"{kind} '{name}' is not registered{hint}")


class AlreadyRegisteredError(NicError):
    """Raised when a name is registered twice."""

    def __init__(self, name: str, kind: str = "provider") -> None:
        self.name = name
        self.kind = kind
        super().__init__(f"{kind} '{name}' is already registered")


class PollError(NicError):
    """Base class for readiness wait failures."""

    def __init__(self, message: str, elapsed: float, timeout: float, description: str) -> None:
        self.elapsed = elapsed
        self.timeout = timeout
        self.description = description
        super().__init__(message)


class PollTimeoutError(PollError):
    """The condition did not become true before the deadline."""

    def __init__(self, elapsed: float, timeout: float, description: str = "condition") -> None:
        super().__init__(
            f"Timed out waiting for {description} after {elapsed:.1f}s (timeout {timeout:.1f}s)",
            elapsed,
            timeout,
            description,
        )


class PollCancelledError(PollError):
    """The wait was cancelled by the caller before the deadline."""

    def __init__(self, elapsed: float, timeout: float, description: str = "condition") -> None:
        super().__init__(
            f"Cancelled while waiting for {description} after {elapsed:.1f}s "
            f"(timeout {timeout:.1f}s)",
            elapsed,
            timeout,
            description,
        )


class UpstreamAPIError(NicError):
    """Wraps a failure returned by a cloud, Kubernetes or DNS client."""

    def __init__(self, kind: str, operation: str, original: BaseException) -> None:
        self.kind = kind
        self.operation = operation
        self.original = original
        super().__init__(f"{kind} {operation} failed: {type(original).__name__}: {original}")


class ClusterNotFoundError(NicError):
    """Raised when a kubeconfig is requested for a cluster that does not exist."""

    pass


class HelmError(NicError):
    """Raised when the helm binary is missing or a helm command fails."""

    pass


@dataclass(frozen=True)
class ResourceFailure:
    """A failure attributed to one resource."""

    kind: str
    identity: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.kind} '{self.identity}': {self.error}"


class AggregateError(NicError):
    """Base class for errors collecting several per-resource failures."""

    summary = "operation failed"

    def __init__(self, failures: Sequence[ResourceFailure]) -> None:
        self.failures = list(failures)
        lines = "\n  - ".join(str(f) for f in self.failures)
        super().__init__(f"{self.summary} for {len(self.failures)} resource(s):\n  - {lines}")


class NodePoolReconcileError(AggregateError):
    """One or more node pools failed to reconcile."""

    summary = "node pool reconciliation failed"


class DestroyError(AggregateError):
    """One or more resources failed to delete."""

    summary = "destroy failed"
