"""
InstagramConnector — Instagram publishing via the Facebook Graph API.

The code exchange yields a short-lived user token.  A follow-up
``fb_exchange_token`` grant upgrades it to a long-lived token; that step is
a different grant (not a retry of the code) and is best-effort: if it fails
the short-lived token is kept.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urlencode

import httpx

from connectors.base import BaseConnector
from connectors.schemas import CredentialBundle, ProviderId

logger = logging.getLogger(__name__)

_FB_DIALOG_URL = "https://www.facebook.com/v18.0/dialog/oauth"
_FB_TOKEN_URL = "https://graph.facebook.com/v18.0/oauth/access_token"


class InstagramConnector(BaseConnector):
    """OAuth2 connector for Instagram Business accounts."""

    @property
    def provider(self) -> ProviderId:
        return ProviderId.INSTAGRAM

    @property
    def display_name(self) -> str:
        return "Instagram"

    @property
    def scopes(self) -> List[str]:
        return ["instagram_basic", "instagram_content_publish"]

    def get_auth_url(
        self,
        state: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
    ) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": ",".join(self.scopes),
            "response_type": "code",
            "state": state,
        }
        return f"{_FB_DIALOG_URL}?{urlencode(params)}"

    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        code: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
        *,
        state: Optional[str] = None,
    ) -> CredentialBundle:
        resp = await client.post(
            _FB_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )
        short_lived = self.parse_token_response(resp)

        long_lived = await self._upgrade(client, short_lived["access_token"])
        data = long_lived or short_lived
        return self.build_bundle(
            data,
            scope=",".join(self.scopes),
            metadata={"long_lived": long_lived is not None},
        )

    async def _upgrade(self, client: httpx.AsyncClient, short_token: str) -> Optional[dict]:
        """Swap a short-lived token for a long-lived one; None on any failure."""
        try:
            resp = await client.get(
                _FB_TOKEN_URL,
                params={
                    "grant_type": "fb_exchange_token",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "fb_exchange_token": short_token,
                },
            )
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Instagram long-lived token upgrade failed: %s", type(exc).__name__)
            return None

        if resp.is_error or not isinstance(data, dict) or not data.get("access_token"):
            logger.warning("Instagram long-lived token upgrade rejected: status=%s", resp.status_code)
            return None
        return data
