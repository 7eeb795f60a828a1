"""
LinkedInConnector — OAuth2 for posting on behalf of a member.
"""

from __future__ import annotations

from typing import List, Optional
from urllib.parse import urlencode

import httpx

from connectors.base import BaseConnector
from connectors.schemas import CredentialBundle, ProviderId

_LI_AUTH_URL = "https://www.linkedin.com/oauth/v2/authorization"
_LI_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"


class LinkedInConnector(BaseConnector):
    """OAuth2 connector for LinkedIn."""

    @property
    def provider(self) -> ProviderId:
        return ProviderId.LINKEDIN

    @property
    def display_name(self) -> str:
        return "LinkedIn"

    @property
    def scopes(self) -> List[str]:
        return ["r_liteprofile", "w_member_social"]

    def get_auth_url(
        self,
        state: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
    ) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{_LI_AUTH_URL}?{urlencode(params)}"

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
            _LI_TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        data = self.parse_token_response(resp)
        # LinkedIn does not echo the granted scope
        return self.build_bundle(data, scope=",".join(self.scopes))
