"""
GoogleDriveConnector — OAuth2 web flow for Google Drive.

Form-encoded token request with the client credentials in the body.
"""

from __future__ import annotations

from typing import List, Optional
from urllib.parse import urlencode

import httpx

from connectors.base import BaseConnector
from connectors.schemas import CredentialBundle, ProviderId

# Google OAuth2 endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class GoogleDriveConnector(BaseConnector):
    """OAuth2 connector for Google Drive."""

    @property
    def provider(self) -> ProviderId:
        return ProviderId.GOOGLE_DRIVE

    @property
    def display_name(self) -> str:
        return "Google Drive"

    @property
    def scopes(self) -> List[str]:
        return ["https://www.googleapis.com/auth/drive.file"]

    def get_auth_url(
        self,
        state: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
    ) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",       # gets refresh_token
            "prompt": "consent",            # force consent to always get refresh_token
            "state": state,
        }
        return f"{_GOOGLE_AUTH_URL}?{urlencode(params)}"

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
            _GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        return self.build_bundle(self.parse_token_response(resp))
