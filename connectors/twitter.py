"""
TwitterConnector — OAuth2 (PKCE) for the X/Twitter v2 API.

Client credentials travel as HTTP Basic auth; the body is form-encoded.

The PKCE verifier is never stored: it is ``HMAC-SHA256(client_secret, state)``
so the callback can rebuild it from the state token it gets back, while
anyone without the client secret cannot.  The challenge uses ``S256``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import List, Optional
from urllib.parse import urlencode

import httpx

from connectors.base import BaseConnector
from connectors.schemas import CredentialBundle, ExchangeErrorKind, ProviderId

_TW_AUTH_URL = "https://twitter.com/i/oauth2/authorize"
_TW_TOKEN_URL = "https://api.twitter.com/2/oauth2/token"


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def pkce_challenge(verifier: str) -> str:
    """S256 code challenge for ``verifier``."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


class TwitterConnector(BaseConnector):
    """OAuth2 connector for Twitter."""

    @property
    def provider(self) -> ProviderId:
        return ProviderId.TWITTER

    @property
    def display_name(self) -> str:
        return "Twitter"

    @property
    def scopes(self) -> List[str]:
        return ["tweet.read", "tweet.write", "users.read", "offline.access"]

    def pkce_verifier(self, state: str) -> str:
        """43-character verifier bound to ``state`` (RFC 7636 minimum length)."""
        digest = hmac.new(self.client_secret.encode(), state.encode(), hashlib.sha256).digest()
        return _b64url(digest)

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
            "code_challenge": pkce_challenge(self.pkce_verifier(state)),
            "code_challenge_method": "S256",
        }
        return f"{_TW_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(
        self,
        client: httpx.AsyncClient,
        code: str,
        redirect_uri: str,
        provider_hint: Optional[str] = None,
        *,
        state: Optional[str] = None,
    ) -> CredentialBundle:
        if not state:
            raise self.fail(
                ExchangeErrorKind.INVALID_PROVIDER_HINT,
                detail="state token is required to rebuild the PKCE verifier",
            )

        resp = await client.post(
            _TW_TOKEN_URL,
            auth=(self.client_id, self.client_secret),
            data={
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
                "code_verifier": self.pkce_verifier(state),
            },
        )
        return self.build_bundle(self.parse_token_response(resp))
