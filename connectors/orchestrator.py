"""
ConnectorOrchestrator — the OAuth callback as an explicit state machine.

    AUTHENTICATING → STATE_VERIFIED → PROVIDER_EXCHANGED → VAULTED → REDIRECTED
                         (any step) → FAILED

The orchestrator knows nothing about FastAPI: it takes the raw
``Authorization`` header and query parameters and returns a
``CallbackOutcome`` that the route turns into a response.  Redirects carry
only ``success``/``provider`` or ``error``, never token material.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping, Optional
from urllib.parse import urlencode

from auth.jwt import TokenVerifier
from auth.membership import MembershipDirectory
from config.settings import Settings
from connectors.audit import AuditAction, AuditEvent, AuditSink
from connectors.errors import AuthenticationError, VaultError
from connectors.registry import ProviderExchangeRegistry
from connectors.schemas import ExchangeError, ExchangeErrorKind, ProviderId
from connectors.state import StateFailure, StateTokenCodec
from connectors.vault import CredentialVault
from utils.redaction import redact_id

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/v1/integrations/callback"
INTEGRATIONS_PATH = "/integrations"

# Failures that look like an attack rather than a stale tab
_SUSPICIOUS_STATE_FAILURES = {StateFailure.SUBJECT_MISMATCH, StateFailure.BAD_SIGNATURE}


class ConnectState(str, Enum):
    AUTHENTICATING = "AUTHENTICATING"
    STATE_VERIFIED = "STATE_VERIFIED"
    PROVIDER_EXCHANGED = "PROVIDER_EXCHANGED"
    VAULTED = "VAULTED"
    REDIRECTED = "REDIRECTED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class CallbackOutcome:
    """
    Terminal result of one callback: a redirect or a bare error status.

    ``failed_at`` names the step that was being attempted when the flow
    moved to FAILED.
    """

    state: ConnectState
    status_code: int
    location: Optional[str] = None
    error: Optional[str] = None
    message: str = ""
    failed_at: Optional[ConnectState] = None


def callback_redirect_uri(settings: Settings, provider: ProviderId) -> str:
    """Redirect URI registered with ``provider`` for this deployment."""
    base = settings.oauth_redirect_base.rstrip("/")
    return f"{base}{CALLBACK_PATH}?{urlencode({'provider': provider.value})}"


class ConnectorOrchestrator:
    """Runs one OAuth callback from authentication to redirect."""

    def __init__(
        self,
        settings: Settings,
        *,
        identity: TokenVerifier,
        membership: MembershipDirectory,
        state_codec: StateTokenCodec,
        registry: ProviderExchangeRegistry,
        vault: CredentialVault,
        audit: AuditSink,
    ) -> None:
        self._settings = settings
        self._identity = identity
        self._membership = membership
        self._state_codec = state_codec
        self._registry = registry
        self._vault = vault
        self._audit = audit

    # ── Outcomes ───────────────────────────────────────────────────────

    def _integrations_url(self, **params: str) -> str:
        base = self._settings.site_url.rstrip("/")
        return f"{base}{INTEGRATIONS_PATH}?{urlencode(params)}"

    def _redirect_success(self, provider: ProviderId) -> CallbackOutcome:
        return CallbackOutcome(
            state=ConnectState.REDIRECTED,
            status_code=302,
            location=self._integrations_url(success="true", provider=provider.value),
        )

    def _redirect_failure(self, stage: ConnectState, error: str) -> CallbackOutcome:
        return CallbackOutcome(
            state=ConnectState.FAILED,
            status_code=302,
            location=self._integrations_url(error=error),
            error=error,
            failed_at=stage,
        )

    @staticmethod
    def _reject(stage: ConnectState, status_code: int, error: str, message: str) -> CallbackOutcome:
        return CallbackOutcome(
            state=ConnectState.FAILED,
            status_code=status_code,
            error=error,
            message=message,
            failed_at=stage,
        )

    # ── Flow ───────────────────────────────────────────────────────────

    async def handle_callback(
        self,
        authorization: Optional[str],
        params: Mapping[str, str],
    ) -> CallbackOutcome:
        stage = ConnectState.AUTHENTICATING
        try:
            user_id = self._identity.verify_header(authorization)
        except AuthenticationError as exc:
            logger.warning("OAuth callback rejected: %s", exc.message)
            return self._reject(stage, 401, exc.error_code, "Unauthorized")

        org_id = await self._membership.get_org_id(user_id)
        if not org_id:
            logger.warning("OAuth callback rejected: user %s has no organization", redact_id(user_id))
            return self._reject(stage, 403, "forbidden", "User must belong to an organization")

        code = params.get("code")
        state = params.get("state")
        provider_raw = params.get("provider")
        if not code or not state or not provider_raw:
            return self._reject(stage, 400, "missing_parameters", "Missing OAuth parameters")

        provider = ProviderId.parse(provider_raw)
        if provider is None:
            logger.warning("OAuth callback for unsupported provider %r", provider_raw[:32])
            return self._reject(stage, 400, "unsupported_provider", "Unsupported provider")

        stage = ConnectState.STATE_VERIFIED
        verification = self._state_codec.verify(state, user_id)
        if not verification.ok:
            return await self._state_rejected(user_id, provider, state, verification.reason)
        logger.debug("OAuth state verified for user %s", redact_id(user_id))

        stage = ConnectState.PROVIDER_EXCHANGED
        result = await self._registry.exchange(
            provider,
            code,
            callback_redirect_uri(self._settings, provider),
            params.get("shop"),
            state=state,
        )
        if isinstance(result, ExchangeError):
            if result.kind is ExchangeErrorKind.UNSUPPORTED_PROVIDER:
                return self._reject(stage, 400, "unsupported_provider", "Unsupported provider")
            await self._audit.record(
                AuditEvent(
                    actor_id=user_id,
                    action=AuditAction.EXCHANGE_FAILED,
                    metadata={
                        "provider": provider.value,
                        "kind": result.kind.value,
                        "provider_status": result.provider_status,
                    },
                )
            )
            return self._redirect_failure(stage, "oauth_failed")

        bundle = result.model_copy(
            update={
                "organization_id": org_id,
                "metadata": {
                    **result.metadata,
                    "connected_by": user_id,
                    "connected_at": datetime.now(timezone.utc).isoformat(),
                },
            }
        )

        stage = ConnectState.VAULTED
        # Shielded: a client disconnect must not abandon the write halfway
        try:
            await asyncio.shield(self._vault.write(bundle))
        except VaultError as exc:
            logger.error(
                "Credential storage failed for %s (org %s): %s",
                provider.value,
                redact_id(org_id),
                exc.kind.value,
            )
            return self._redirect_failure(stage, "storage_failed")

        logger.info(
            "OAuth connected: provider=%s org=%s user=%s",
            provider.value,
            redact_id(org_id),
            redact_id(user_id),
        )
        return self._redirect_success(provider)

    async def _state_rejected(
        self,
        user_id: str,
        provider: ProviderId,
        state: str,
        reason: StateFailure,
    ) -> CallbackOutcome:
        """Record the rejected state (always, before terminating) and fail with 403."""
        logger.error("State verification failed for user %s: %s", redact_id(user_id), reason.value)
        action = (
            AuditAction.STATE_MISMATCH
            if reason in _SUSPICIOUS_STATE_FAILURES
            else AuditAction.STATE_REJECTED
        )
        await self._audit.record(
            AuditEvent(
                actor_id=user_id,
                action=action,
                metadata={
                    "provider": provider.value,
                    "reason": reason.value,
                    "state_partial": state[:8],
                },
            )
        )
        return self._reject(ConnectState.STATE_VERIFIED, 403, "invalid_state", "Invalid state token")
