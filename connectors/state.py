"""
OAuth state tokens — CSRF protection for the redirect round-trip.

A token is ``"<subject_id>:<issued_at_millis>:<hex_signature>"`` where the
signature is HMAC-SHA256 over ``"<subject_id>:<issued_at_millis>"``.  It is
bound to the authenticated caller and only accepted for ten minutes.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from enum import Enum
from typing import NamedTuple, Optional

from config.settings import Settings
from connectors.errors import ConfigurationError

logger = logging.getLogger(__name__)

STATE_DELIMITER = ":"
STATE_WINDOW_MS = 10 * 60 * 1000


class StateFailure(str, Enum):
    MALFORMED = "MALFORMED"
    SUBJECT_MISMATCH = "SUBJECT_MISMATCH"
    EXPIRED = "EXPIRED"
    BAD_SIGNATURE = "BAD_SIGNATURE"


class StateVerification(NamedTuple):
    ok: bool
    reason: Optional[StateFailure] = None


_OK = StateVerification(ok=True)


def _now_ms() -> int:
    return int(time.time() * 1000)


class StateTokenCodec:
    """Sign and verify subject-bound, time-boxed state tokens."""

    def __init__(
        self,
        secret: Optional[str],
        *,
        window_ms: int = STATE_WINDOW_MS,
        allow_unsigned: bool = False,
    ) -> None:
        if not secret and not allow_unsigned:
            raise ConfigurationError("OAuth state secret is not configured")
        self._key = (secret or "").encode()
        self._window_ms = window_ms
        self._unsigned = not secret

    @classmethod
    def from_settings(cls, settings: Settings) -> "StateTokenCodec":
        """
        Build the codec from startup configuration.

        A missing ``OAUTH_STATE_SECRET`` is fatal unless the app runs in
        development with ``ALLOW_UNSIGNED_OAUTH_STATE`` explicitly set.
        """
        secret = settings.oauth_state_secret
        if not secret:
            if settings.is_development and settings.allow_unsigned_oauth_state:
                logger.warning(
                    "OAUTH_STATE_SECRET not set — state signatures are NOT verified. "
                    "This disables CSRF protection and must never reach production."
                )
                return cls(None, allow_unsigned=True)
            raise ConfigurationError(
                "OAUTH_STATE_SECRET must be set (unsigned state is only allowed "
                "with APP_ENV=development and ALLOW_UNSIGNED_OAUTH_STATE=true)"
            )
        return cls(secret)

    @property
    def signing_enabled(self) -> bool:
        return not self._unsigned

    def _signature(self, subject_id: str, issued_at: str) -> str:
        payload = f"{subject_id}{STATE_DELIMITER}{issued_at}".encode()
        return hmac.new(self._key, payload, hashlib.sha256).hexdigest()

    def sign(self, subject_id: str, now_ms: Optional[int] = None) -> str:
        """Create a state token for ``subject_id`` issued at ``now_ms``."""
        if STATE_DELIMITER in subject_id:
            raise ValueError("subject_id must not contain the state delimiter")
        issued_at = str(_now_ms() if now_ms is None else now_ms)
        sig = self._signature(subject_id, issued_at)
        return STATE_DELIMITER.join((subject_id, issued_at, sig))

    def verify(
        self,
        token: str,
        expected_subject_id: str,
        now_ms: Optional[int] = None,
    ) -> StateVerification:
        """
        Check structure, subject, freshness and signature, in that order.

        Pure apart from the degraded-mode warning; never raises.
        """
        parts = (token or "").split(STATE_DELIMITER)
        if len(parts) != 3:
            return StateVerification(False, StateFailure.MALFORMED)
        subject_id, issued_at, signature = parts
        if not subject_id or not signature or not (issued_at.isascii() and issued_at.isdigit()):
            return StateVerification(False, StateFailure.MALFORMED)

        if subject_id != expected_subject_id:
            return StateVerification(False, StateFailure.SUBJECT_MISMATCH)

        now = _now_ms() if now_ms is None else now_ms
        if now - int(issued_at) > self._window_ms:
            return StateVerification(False, StateFailure.EXPIRED)

        if self._unsigned:
            logger.warning("OAuth state signature check skipped: no signing secret configured")
            return _OK

        expected = self._signature(subject_id, issued_at).encode()
        if not hmac.compare_digest(expected, signature.encode("utf-8")):
            return StateVerification(False, StateFailure.BAD_SIGNATURE)
        return _OK
