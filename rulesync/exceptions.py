"""Exception hierarchy for rulesync.

Every failure a reconciliation pass can hit maps onto one of these classes,
so callers can tell configuration mistakes (not worth retrying) from
transient pool or remote failures (retried by the next pass).
"""

from __future__ import annotations

from typing import Any


class RuleSyncError(Exception):
    """Base exception for all rulesync errors."""

    def __init__(
        self,
        message: str,
        tenant_id: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.message = message
        self.tenant_id = tenant_id
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "tenant_id": self.tenant_id,
            "context": self.context,
        }


# ── Configuration ────────────────────────────────────────────────────


class ConfigurationError(RuleSyncError):
    """Raised when settings or a tenant definition are invalid."""


class SelectorError(ConfigurationError):
    """Raised when a label selector cannot be parsed or is invalid."""


class CredentialError(ConfigurationError):
    """Raised when credentials reference a secret that cannot be resolved."""


# ── Document pool ────────────────────────────────────────────────────


class PoolAccessError(RuleSyncError):
    """Raised when the rule document pool cannot be read."""


class SerializationError(RuleSyncError):
    """Raised when a rule document is malformed and cannot be submitted."""

    def __init__(self, message: str, document: str = "", **kwargs):
        self.document = document
        if document:
            message = f"{document}: {message}"
        super().__init__(message, **kwargs)


# ── Remote store ─────────────────────────────────────────────────────


class RemoteCallError(RuleSyncError):
    """Raised when a call to the remote rule store fails."""

    def __init__(
        self,
        message: str,
        namespace: str = "",
        operation: str = "",
        status_code: int | None = None,
        **kwargs,
    ):
        self.namespace = namespace
        self.operation = operation
        self.status_code = status_code
        super().__init__(message, **kwargs)
