"""
Token encryption: encrypts OAuth tokens at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
The Fernet key is derived from the vault keyring token
(env var: ``KEYRING_TOKEN``) as ``urlsafe_b64encode(sha256(token))``, so any
high-entropy string works as a keyring token.

Unlike a convenience cipher there is no plaintext fallback: without a key
the cipher cannot be built.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet

from connectors.errors import VaultError, VaultErrorKind


class TokenCipher:
    """Encrypt-only view of the vault key."""

    def __init__(self, keyring_token: Optional[str]) -> None:
        if not keyring_token:
            raise VaultError(VaultErrorKind.KEY_NOT_CONFIGURED, "Server configuration error")
        digest = hashlib.sha256(keyring_token.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: str) -> str:
        """Return the Fernet ciphertext (URL-safe base64)."""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")
