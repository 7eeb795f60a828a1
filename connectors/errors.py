"""
Error taxonomy for the integration connector.

Every error a caller can see maps onto one HTTP status.  Provider failures
are not exceptions: they travel as ``ExchangeError`` values (see
``connectors.schemas``) so the orchestrator can branch on their kind.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional


class ConnectorError(Exception):
    """Base class for all connector errors surfaced to HTTP callers."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.error_code)
        self.message = message or self.error_code


class ConfigurationError(ConnectorError):
    """Raised at startup when required configuration is missing or unsafe."""

    error_code = "configuration_error"


class AuthenticationError(ConnectorError):
    status_code = 401
    error_code = "unauthorized"


class AuthorizationError(ConnectorError):
    status_code = 403
    error_code = "forbidden"


class ValidationError(ConnectorError):
    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str = "", fields: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class UnsupportedProviderError(ConnectorError):
    status_code = 400
    error_code = "unsupported_provider"


class VaultErrorKind(str, Enum):
    KEY_NOT_CONFIGURED = "KEY_NOT_CONFIGURED"
    STORAGE_FAILED = "STORAGE_FAILED"


class VaultError(ConnectorError):
    status_code = 500
    error_code = "vault_error"

    def __init__(self, kind: VaultErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind


class RateLimitError(ConnectorError):
    status_code = 429
    error_code = "rate_limited"

    def __init__(self, message: str = "", retry_after: int = 1) -> None:
        super().__init__(message)
        self.retry_after = retry_after
