"""
OAuth integration connector — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.dependencies import Services
from api.errors import register_exception_handlers
from api.middleware import register_middleware
from auth.jwt import TokenVerifier
from auth.membership import MembershipDirectory
from config.settings import Settings, get_settings
from connectors.audit import AuditSink
from connectors.orchestrator import ConnectorOrchestrator
from connectors.ratelimit import RateLimiter
from connectors.registry import ProviderExchangeRegistry
from connectors.routes import router as integrations_router
from connectors.state import StateTokenCodec
from connectors.vault import CredentialVault
from database.helpers import init_schema
from database.session import build_engine, build_session_factory

logger = logging.getLogger(__name__)

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        stream=sys.stdout,
    )
    for _noisy in ("httpcore", "httpx", "urllib3", "aiosqlite"):
        logging.getLogger(_noisy).setLevel(logging.WARNING)


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    """Wire every component from one settings object.  Fails fast on unsafe config."""
    identity = TokenVerifier(settings.jwt_secret)
    membership = MembershipDirectory(session_factory)
    state_codec = StateTokenCodec.from_settings(settings)
    registry = ProviderExchangeRegistry(settings, transport=transport)
    vault = CredentialVault(session_factory, settings.keyring_token)
    audit = AuditSink(session_factory)
    orchestrator = ConnectorOrchestrator(
        settings,
        identity=identity,
        membership=membership,
        state_codec=state_codec,
        registry=registry,
        vault=vault,
        audit=audit,
    )
    return Services(
        settings=settings,
        identity=identity,
        membership=membership,
        state_codec=state_codec,
        registry=registry,
        vault=vault,
        audit=audit,
        orchestrator=orchestrator,
        rate_limiter=RateLimiter.from_settings(settings),
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or get_settings()

    engine = None
    if session_factory is None:
        engine = build_engine(settings)
        session_factory = build_session_factory(engine)

    app = FastAPI(
        title="Integration Connector",
        version="1.0.0",
        description="OAuth connections to external providers with encrypted credential storage.",
    )
    app.state.services = build_services(settings, session_factory, transport=transport)

    # CORS: answers OPTIONS preflight for browser callers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(integrations_router, prefix="/api/v1/integrations")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup():
        if engine is not None:
            await init_schema(engine)
        logger.info(
            "Configured providers: %s",
            ", ".join(app.state.services.registry.list_configured()) or "none",
        )
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.services.rate_limiter.close()
        if engine is not None:
            await engine.dispose()

    return app


if __name__ == "__main__":
    _settings = get_settings()
    configure_logging(_settings)
    uvicorn.run(
        create_app(_settings),
        host=_settings.host,
        port=_settings.port,
        log_level="debug" if _settings.debug else "info",
    )
