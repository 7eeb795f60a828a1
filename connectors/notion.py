"""
NotionConnector — OAuth2 for a Notion workspace integration.

JSON body, client credentials as HTTP Basic auth.  Notion tokens do not
expire and come without a refresh token.
"""

from __future__ import annotations

from typing import List, Optional
from urllib.parse import urlencode

import httpx

from connectors.base import BaseConnector
from connectors.schemas import CredentialBundle, ProviderId

_NOTION_AUTH_URL = "https://api.notion.com/v1/oauth/authorize"
_NOTION_TOKEN_URL = "https://api.notion.com/v1/oauth/token"


class NotionConnector(BaseConnector):
    """OAuth2 connector for Notion."""

    @property
    def provider(self) -> ProviderId:
        return ProviderId.NOTION

    @property
    def display_name(self) -> str:
        return "Notion"

    @property
    def scopes(self) -> List[str]:
        # Notion grants access per page during consent, not via scopes
        return []

    def get_auth_url(
        self,
        state: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
    ) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "owner": "user",
            "redirect_uri": redirect_uri,
            "state": state,
        }
        return f"{_NOTION_AUTH_URL}?{urlencode(params)}"

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
            _NOTION_TOKEN_URL,
            auth=(self.client_id, self.client_secret),
            json={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )
        data = self.parse_token_response(resp)
        return self.build_bundle(
            data,
            metadata={
                "workspace_id": data.get("workspace_id"),
                "workspace_name": data.get("workspace_name"),
                "bot_id": data.get("bot_id"),
            },
        )
