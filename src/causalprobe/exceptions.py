"""
Package-level exception hierarchy for causalprobe.

All exceptions inherit from CausalProbeError, enabling:
- Catching all causalprobe errors with a single except clause
- Rich context fields for debugging (model_key, config_key, states, etc.)
- Structured serialization via to_dict() for JSON error responses

Hierarchy:
    CausalProbeError
    ├── ResolutionError            – A model could not be resolved
    │   ├── ModelNotFoundError     – Registry has no such key/version
    │   └── ModelReferenceError    – Neither reference nor inline spec given
    ├── ConfigurationError         – Invalid configuration
    └── LifecycleTransitionError   – Hypothesis transition not permitted

Alignment shortfalls and malformed inline entries are deliberately NOT
exceptions: the former is reported in-band as a disagreement atom, the
latter is skipped during resolution.
"""

from __future__ import annotations

from typing import Any


class CausalProbeError(Exception):
    """
    Base exception for all causalprobe errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Resolution Errors ────────────────────────────────────────────────────


class ResolutionError(CausalProbeError):
    """A model reference or inline specification could not be resolved."""
    pass


class ModelNotFoundError(ResolutionError):
    """
    The registry has no model for the requested key/version.

    Fatal to the comparison that requested it; never retried internally.

    Attributes:
        model_key: The requested model key.
        version: The requested version (None means "current").
    """

    def __init__(self, model_key: str, version: str | None = None) -> None:
        self.model_key = model_key
        self.version = version
        ref = f"{model_key}@{version}" if version else model_key
        super().__init__(f"SCM model not found: {ref}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["model_key"] = self.model_key
        result["version"] = self.version
        return result


class ModelReferenceError(ResolutionError):
    """Neither a model reference nor an inline spec was supplied."""
    pass


# ── Configuration Errors ─────────────────────────────────────────────────


class ConfigurationError(CausalProbeError):
    """
    Error in causalprobe configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result


# ── Lifecycle Errors ─────────────────────────────────────────────────────


class LifecycleTransitionError(CausalProbeError):
    """
    A manual hypothesis transition is not permitted from the current state.

    Attributes:
        hypothesis_id: The hypothesis being transitioned.
        from_state: Current state (None if the history is empty).
        to_state: Requested state.
    """

    def __init__(
        self,
        hypothesis_id: str,
        from_state: str | None,
        to_state: str,
    ) -> None:
        self.hypothesis_id = hypothesis_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Hypothesis '{hypothesis_id}' cannot move from "
            f"{from_state or 'nothing'} to {to_state}"
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["hypothesis_id"] = self.hypothesis_id
        result["from_state"] = self.from_state
        result["to_state"] = self.to_state
        return result
