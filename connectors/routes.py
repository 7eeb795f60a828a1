"""
Integration API routes — connect, OAuth callback, vault write, status.

Route prefix: /api/v1/integrations
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status
from fastapi.responses import PlainTextResponse, RedirectResponse
from pydantic import BaseModel, Field, SecretStr
from pydantic import ValidationError as PydanticValidationError

from api.dependencies import Services, get_services
from auth.dependencies import enforce_write_token_rate_limit, get_current_user_id
from connectors.errors import (
    AuthorizationError,
    UnsupportedProviderError,
    ValidationError,
)
from connectors.orchestrator import callback_redirect_uri
from connectors.schemas import CredentialBundle, ProviderId
from utils.redaction import redact_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["integrations"])

_REQUIRED_WRITE_FIELDS = ("org_id", "provider", "access_token")


# ── Request schemas ───────────────────────────────────────────────────


class TokenWriteRequest(BaseModel):
    org_id: str
    provider: str
    access_token: SecretStr
    refresh_token: Optional[SecretStr] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


def _provider_or_400(provider: str) -> ProviderId:
    provider_id = ProviderId.parse(provider)
    if provider_id is None:
        raise UnsupportedProviderError("Unsupported provider")
    return provider_id


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/providers")
async def list_providers(services: Services = Depends(get_services)) -> List[dict]:
    """
    List all known providers and their configuration status.
    No auth required — used by the frontend to show available integrations.
    """
    return services.registry.list_providers()


@router.get("/connect/{provider}")
async def get_auth_url(
    provider: str,
    shop: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, str]:
    """Build the provider's authorization URL with a freshly signed state."""
    connector = services.registry.get(provider)
    if connector is None:
        raise UnsupportedProviderError("Provider not found or not configured")

    state = services.state_codec.sign(user_id)
    auth_url = connector.get_auth_url(
        state,
        callback_redirect_uri(services.settings, connector.provider),
        shop,
    )
    logger.info("Generated auth URL for %s (user %s)", connector.provider.value, redact_id(user_id))
    return {"auth_url": auth_url, "provider": connector.provider.value}


@router.get("/callback")
async def oauth_callback(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
    services: Services = Depends(get_services),
) -> Response:
    """
    OAuth callback — the provider redirects here after consent.

    Success and exchange/storage failures redirect to the integrations page;
    authentication, parameter and state failures answer with a bare status.
    """
    try:
        outcome = await services.orchestrator.handle_callback(
            authorization, dict(request.query_params)
        )
    except Exception:
        logger.exception("OAuth callback error")
        fallback = services.settings.site_url.rstrip("/") + "/integrations?error=oauth_failed"
        return RedirectResponse(fallback, status_code=status.HTTP_302_FOUND)

    if outcome.location:
        return RedirectResponse(outcome.location, status_code=outcome.status_code)
    return PlainTextResponse(outcome.message, status_code=outcome.status_code)


@router.post("/write-token", status_code=status.HTTP_204_NO_CONTENT)
async def write_token(
    request: Request,
    user_id: str = Depends(enforce_write_token_rate_limit),
    services: Services = Depends(get_services),
) -> Response:
    """
    Encrypt and store a credential bundle for an organization.

    Answers 204 with no body: storing and reading back are separate privileges.
    """
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON body")

    missing = [name for name in _REQUIRED_WRITE_FIELDS if not body.get(name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing)

    try:
        req = TokenWriteRequest.model_validate(body)
    except PydanticValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise ValidationError(f"Invalid fields: {', '.join(fields)}", fields)

    provider = _provider_or_400(req.provider)

    if not await services.membership.is_member(user_id, req.org_id):
        logger.warning(
            "Token write refused: user %s is not a member of org %s",
            redact_id(user_id),
            redact_id(req.org_id),
        )
        raise AuthorizationError("Not a member of this organization")

    await services.vault.write(
        CredentialBundle(
            organization_id=req.org_id,
            provider=provider,
            access_token=req.access_token,
            refresh_token=req.refresh_token,
            expires_at=req.expires_at,
            scope=req.scope,
            metadata=req.metadata,
        )
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/status/{provider}")
async def connection_status(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Whether the caller's organization has stored credentials for ``provider``."""
    provider_id = _provider_or_400(provider)
    org_id = await services.membership.get_org_id(user_id)
    if not org_id:
        raise AuthorizationError("User must belong to an organization")
    connected = await services.vault.exists(org_id, provider_id.value)
    return {"provider": provider_id.value, "connected": connected}
