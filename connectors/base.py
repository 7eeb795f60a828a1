"""
BaseConnector — abstract interface for all OAuth2 provider adapters.

Every provider (Google Drive, Shopify, Notion, …) subclasses this and
implements authorization-URL building and the code → token exchange.
Adapters make exactly one request to the token endpoint and never retry:
authorization codes are single-use, so a second attempt can only fail.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from connectors.schemas import (
    CredentialBundle,
    ExchangeError,
    ExchangeErrorKind,
    ProviderId,
)


class ExchangeFailed(Exception):
    """Internal signal from an adapter; the registry turns it into a value."""

    def __init__(self, error: ExchangeError) -> None:
        super().__init__(error.kind.value)
        self.error = error


class BaseConnector(ABC):
    """Abstract base for all OAuth2 connectors."""

    def __init__(self, client_id: str, client_secret: str) -> None:
        self.client_id = client_id
        self.client_secret = client_secret

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider(self) -> ProviderId:
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable: 'Google Drive', 'Shopify', 'Notion'."""
        ...

    @property
    @abstractmethod
    def scopes(self) -> List[str]:
        """OAuth scopes requested by this connector."""
        ...

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    def get_auth_url(
        self,
        state: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
    ) -> str:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        state : str
            Signed state token (see ``connectors.state``).
        redirect_uri : str
            Callback URL registered with the provider.
        provider_hint : str, optional
            Provider-scoped routing value, e.g. the Shopify shop domain.
        """
        ...

    @abstractmethod
    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        code: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
        *,
        state: Optional[str] = None,
    ) -> CredentialBundle:
        """
        Exchange the authorization code for a credential bundle.

        ``state`` is the verified state token from the callback, for adapters
        that bind the exchange to it (PKCE).

        Raises ``ExchangeFailed`` for provider-level failures; transport
        errors from ``httpx`` propagate to the registry untouched.
        """
        ...

    # ── Helpers ─────────────────────────────────────────────────────────

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def fail(
        self,
        kind: ExchangeErrorKind,
        detail: str = "",
        provider_status: Optional[int] = None,
    ) -> ExchangeFailed:
        return ExchangeFailed(
            ExchangeError(
                kind=kind,
                provider=self.provider.value,
                provider_status=provider_status,
                detail=detail,
            )
        )

    def parse_token_response(self, resp: httpx.Response) -> Dict[str, Any]:
        """
        Decode a token-endpoint response.

        Some providers (Facebook, Twitter) report errors in a 200 body, so an
        ``error`` field counts as a rejection too.
        """
        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.is_error or (isinstance(body, dict) and body.get("error")):
            raise self.fail(
                ExchangeErrorKind.PROVIDER_REJECTED,
                detail=resp.text[:500],
                provider_status=resp.status_code,
            )
        if not isinstance(body, dict) or not body.get("access_token"):
            raise self.fail(
                ExchangeErrorKind.MALFORMED_RESPONSE,
                detail="token response is not JSON or has no access_token",
                provider_status=resp.status_code,
            )
        return body

    def build_bundle(
        self,
        data: Dict[str, Any],
        *,
        access_token: Optional[str] = None,
        expires_in: Any = None,
        scope: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CredentialBundle:
        """Map provider fields onto the common bundle shape."""
        lifetime = expires_in if expires_in is not None else data.get("expires_in")
        expires_at = None
        if lifetime not in (None, ""):
            try:
                expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(lifetime))
            except (TypeError, ValueError, OverflowError):
                raise self.fail(
                    ExchangeErrorKind.MALFORMED_RESPONSE,
                    detail=f"unparseable expires_in: {lifetime!r}",
                )

        try:
            return CredentialBundle(
                provider=self.provider,
                access_token=access_token or data["access_token"],
                refresh_token=data.get("refresh_token") or None,
                expires_at=expires_at,
                scope=scope if scope is not None else data.get("scope"),
                metadata=metadata or {},
            )
        except PydanticValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
            raise self.fail(
                ExchangeErrorKind.MALFORMED_RESPONSE,
                detail=f"token response has invalid fields: {', '.join(fields)}",
            )
