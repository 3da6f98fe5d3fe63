"""Error taxonomy shared by the resolver, compilers and reconciler."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ExternalAccessError(Exception):
    """Base class for every error raised while building external access."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in sorted(self.context.items()))
        return f"{self.message} ({details})"


class ConfigurationError(ExternalAccessError):
    """Malformed or contradictory override, default or listener settings."""


class InvariantViolation(ConfigurationError):
    """A compiled object would break a hard invariant (empty hostname, no anycast port)."""


class CompilationError(ExternalAccessError):
    """An artifact could not be serialised."""


class BackendCallError(ExternalAccessError):
    """An apply, delete or list call against the cluster failed."""

    def __init__(self, message: str, *, status: Optional[int] = None, **context: Any) -> None:
        super().__init__(message, **context)
        self.status = status


__all__ = [
    "BackendCallError",
    "CompilationError",
    "ConfigurationError",
    "ExternalAccessError",
    "InvariantViolation",
]
