"""
ProviderExchangeRegistry — maps each ``ProviderId`` to its adapter and runs
the code → credential exchange.

Exchange failures are returned as ``ExchangeError`` values, never raised.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Type, Union

import httpx

from config.settings import Settings
from connectors.base import BaseConnector, ExchangeFailed
from connectors.google_drive import GoogleDriveConnector
from connectors.instagram import InstagramConnector
from connectors.linkedin import LinkedInConnector
from connectors.notion import NotionConnector
from connectors.schemas import (
    ExchangeError,
    ExchangeErrorKind,
    ExchangeResult,
    ProviderId,
)
from connectors.shopify import ShopifyConnector
from connectors.twitter import TwitterConnector

logger = logging.getLogger(__name__)

# ── One adapter per provider ────────────────────────────────────────────

_CONNECTOR_CLASSES: Dict[ProviderId, Type[BaseConnector]] = {
    ProviderId.GOOGLE_DRIVE: GoogleDriveConnector,
    ProviderId.SHOPIFY: ShopifyConnector,
    ProviderId.NOTION: NotionConnector,
    ProviderId.TWITTER: TwitterConnector,
    ProviderId.LINKEDIN: LinkedInConnector,
    ProviderId.INSTAGRAM: InstagramConnector,
}

_missing = set(ProviderId) - set(_CONNECTOR_CLASSES)
if _missing:
    raise RuntimeError(f"No connector registered for: {sorted(p.value for p in _missing)}")


def build_connectors(settings: Settings) -> List[BaseConnector]:
    """Instantiate every adapter with its client credentials."""
    return [
        cls(*settings.provider_credentials(provider.value))
        for provider, cls in _CONNECTOR_CLASSES.items()
    ]


class ProviderExchangeRegistry:
    """Holds the configured adapters and performs code exchanges."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connectors: Optional[Iterable[BaseConnector]] = None,
    ) -> None:
        self._timeout = settings.provider_timeout_seconds
        self._transport = transport
        self._all: Dict[ProviderId, BaseConnector] = {}
        self._connectors: Dict[ProviderId, BaseConnector] = {}

        for conn in connectors if connectors is not None else build_connectors(settings):
            self._all[conn.provider] = conn
            if conn.is_configured():
                self._connectors[conn.provider] = conn
                logger.info(
                    "Connector registered: %s (%s)",
                    conn.display_name,
                    conn.provider.value,
                )
            else:
                logger.warning(
                    "Connector %s skipped — not configured (missing client_id/secret)",
                    conn.provider.value,
                )

    def get(self, provider: Union[str, ProviderId, None]) -> Optional[BaseConnector]:
        """Get a configured connector, or None for unknown/unconfigured providers."""
        provider_id = ProviderId.parse(provider)
        return self._connectors.get(provider_id) if provider_id else None

    def list_providers(self) -> List[Dict[str, object]]:
        """Return info about all known connectors."""
        return [
            {
                "provider": c.provider.value,
                "display_name": c.display_name,
                "configured": c.provider in self._connectors,
            }
            for c in self._all.values()
        ]

    def list_configured(self) -> List[str]:
        return [p.value for p in self._connectors]

    async def exchange(
        self,
        provider: Union[str, ProviderId],
        authorization_code: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
        *,
        state: Optional[str] = None,
    ) -> ExchangeResult:
        """
        Exchange ``authorization_code`` with ``provider``'s token endpoint.

        Returns a ``CredentialBundle`` (without ``organization_id``) or an
        ``ExchangeError``.  Unknown providers fail before any network call.
        """
        connector = self.get(provider)
        if connector is None:
            name = getattr(provider, "value", provider)
            logger.warning("Exchange refused: provider %r unsupported or not configured", name)
            return ExchangeError(ExchangeErrorKind.UNSUPPORTED_PROVIDER, provider=str(name))

        slug = connector.provider.value
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                bundle = await connector.exchange_code(
                    client, authorization_code, redirect_uri, provider_hint, state=state
                )
        except ExchangeFailed as exc:
            error = exc.error
        except httpx.TimeoutException:
            error = ExchangeError(
                ExchangeErrorKind.PROVIDER_UNREACHABLE,
                provider=slug,
                detail=f"timed out after {self._timeout}s",
            )
        except httpx.HTTPError as exc:
            # Network failure without a response counts as a rejection
            error = ExchangeError(
                ExchangeErrorKind.PROVIDER_REJECTED,
                provider=slug,
                detail=type(exc).__name__,
            )
        else:
            logger.info("Code exchanged with %s", slug)
            return bundle

        logger.error(
            "OAuth exchange with %s failed: kind=%s status=%s detail=%s",
            slug,
            error.kind.value,
            error.provider_status,
            error.detail,
        )
        return error
