"""
Bearer token creation and verification.

Tokens are base64-encoded JSON payloads signed with HMAC-SHA256 using the
``JWT_SECRET`` supplied at startup.  This is the identity collaborator the
connector calls into; issuing tokens belongs to the identity service and is
kept here for local development and tests.
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
import json
import time
from base64 import b64decode, b64encode
from typing import Optional

from connectors.errors import AuthenticationError

DEFAULT_EXPIRY_SECONDS = 604800  # 7 days


class TokenVerifier:
    """Resolve ``Authorization: Bearer …`` values to a user id."""

    def __init__(self, secret: str, expiry_seconds: int = DEFAULT_EXPIRY_SECONDS) -> None:
        self._secret = secret.encode()
        self._expiry_seconds = expiry_seconds

    def create_token(self, user_id: str, now: Optional[float] = None) -> str:
        """Create a signed token containing ``user_id`` and expiry."""
        issued = time.time() if now is None else now
        raw = json.dumps({"user_id": user_id, "exp": int(issued) + self._expiry_seconds}).encode()
        sig = hmac.new(self._secret, raw, hashlib.sha256).hexdigest()
        return b64encode(raw).decode() + "." + sig

    def verify_token(self, token: str) -> str:
        """
        Verify token and return ``user_id``.

        Raises ``AuthenticationError`` on malformed, forged or expired tokens.
        """
        parts = (token or "").split(".", 1)
        if len(parts) != 2:
            raise AuthenticationError("Invalid authentication token")
        try:
            raw = b64decode(parts[0], validate=True)
        except (binascii.Error, ValueError):
            raise AuthenticationError("Invalid authentication token")

        expected_sig = hmac.new(self._secret, raw, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(parts[1].encode(), expected_sig.encode()):
            raise AuthenticationError("Invalid authentication token")

        try:
            payload = json.loads(raw)
            user_id = str(payload["user_id"])
            exp = float(payload.get("exp", 0))
        except (ValueError, KeyError, TypeError):
            raise AuthenticationError("Invalid authentication token")
        if exp < time.time():
            raise AuthenticationError("Authentication token expired")
        return user_id

    def verify_header(self, authorization: Optional[str]) -> str:
        """Verify a raw ``Authorization`` header value."""
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthenticationError("Missing authorization header")
        return self.verify_token(authorization[7:].strip())
