"""
FastAPI dependencies (shared across routes).

All components are built once in ``main.create_app`` and hung off
``app.state.services``; handlers reach them only through ``get_services``.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from auth.jwt import TokenVerifier
from auth.membership import MembershipDirectory
from config.settings import Settings
from connectors.audit import AuditSink
from connectors.orchestrator import ConnectorOrchestrator
from connectors.ratelimit import RateLimiter
from connectors.registry import ProviderExchangeRegistry
from connectors.state import StateTokenCodec
from connectors.vault import CredentialVault


@dataclass
class Services:
    settings: Settings
    identity: TokenVerifier
    membership: MembershipDirectory
    state_codec: StateTokenCodec
    registry: ProviderExchangeRegistry
    vault: CredentialVault
    audit: AuditSink
    orchestrator: ConnectorOrchestrator
    rate_limiter: RateLimiter


def get_services(request: Request) -> Services:
    return request.app.state.services
