"""
ShopifyConnector — OAuth2 for a single Shopify store.

The token endpoint lives on the merchant's own shop domain, passed in as the
provider hint.  The domain is validated before any request is built so the
callback cannot be pointed at an arbitrary host.
"""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urlencode

import httpx

from connectors.base import BaseConnector
from connectors.errors import ValidationError
from connectors.schemas import CredentialBundle, ExchangeErrorKind, ProviderId

_SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9-]*\.myshopify\.com$")


def normalize_shop_domain(shop: Optional[str]) -> Optional[str]:
    """
    Return the bare ``<name>.myshopify.com`` domain, or None if invalid.

    Strips a leading scheme and trailing slash; does not lowercase, so a
    mixed-case domain is rejected rather than silently rewritten.
    """
    if not shop:
        return None
    shop = shop.strip()
    for prefix in ("https://", "http://"):
        if shop.startswith(prefix):
            shop = shop[len(prefix):]
    shop = shop.rstrip("/")
    return shop if _SHOP_DOMAIN_RE.match(shop) else None


class ShopifyConnector(BaseConnector):
    """OAuth2 connector for Shopify (offline access tokens)."""

    @property
    def provider(self) -> ProviderId:
        return ProviderId.SHOPIFY

    @property
    def display_name(self) -> str:
        return "Shopify"

    @property
    def scopes(self) -> List[str]:
        return ["read_products", "write_products", "read_orders"]

    def get_auth_url(
        self,
        state: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
    ) -> str:
        shop = normalize_shop_domain(provider_hint)
        if shop is None:
            raise ValidationError("A valid *.myshopify.com shop domain is required", ["shop"])
        params = {
            "client_id": self.client_id,
            "scope": ",".join(self.scopes),
            "redirect_uri": redirect_uri,
            "state": state,
        }
        return f"https://{shop}/admin/oauth/authorize?{urlencode(params)}"

    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        code: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
        *,
        state: Optional[str] = None,
    ) -> CredentialBundle:
        shop = normalize_shop_domain(provider_hint)
        if shop is None:
            raise self.fail(
                ExchangeErrorKind.INVALID_PROVIDER_HINT,
                detail=f"invalid shop domain: {provider_hint!r}",
            )

        resp = await client.post(
            f"https://{shop}/admin/oauth/access_token",
            json={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
            },
        )
        data = self.parse_token_response(resp)
        # Offline tokens carry no expires_in, so expires_at stays None
        return self.build_bundle(data, metadata={"shop": shop})
