"""
Pydantic schemas and value types shared by the connector components.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, SecretStr


class ProviderId(str, Enum):
    """Closed set of providers the exchange registry knows how to talk to."""

    GOOGLE_DRIVE = "google_drive"
    SHOPIFY = "shopify"
    NOTION = "notion"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    INSTAGRAM = "instagram"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ProviderId"]:
        """Return the matching member, or None for unknown slugs."""
        try:
            return cls(value)
        except ValueError:
            return None


class CredentialBundle(BaseModel):
    """
    Secrets and metadata returned by a provider's token endpoint.

    Token fields are ``SecretStr`` so that ``repr()``/``str()`` and default
    serialisation never reveal them.  Only the vault calls
    ``get_secret_value()``.
    """

    organization_id: str = ""
    provider: ProviderId
    access_token: SecretStr
    refresh_token: Optional[SecretStr] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExchangeErrorKind(str, Enum):
    UNSUPPORTED_PROVIDER = "UNSUPPORTED_PROVIDER"
    INVALID_PROVIDER_HINT = "INVALID_PROVIDER_HINT"
    PROVIDER_REJECTED = "PROVIDER_REJECTED"
    PROVIDER_UNREACHABLE = "PROVIDER_UNREACHABLE"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"


@dataclass(frozen=True)
class ExchangeError:
    """
    Failure of a code exchange, returned rather than raised.

    ``detail`` may hold provider output and is for internal logs only.
    """

    kind: ExchangeErrorKind
    provider: str
    provider_status: Optional[int] = None
    detail: str = ""


ExchangeResult = Union[CredentialBundle, ExchangeError]
