"""
Shared fixtures: settings, an in-memory SQLite database, fake provider
endpoints and the wired application.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Callable, List

import httpx
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from auth.jwt import TokenVerifier
from config.settings import Settings
from database.models import Base, Member
from main import build_services, create_app

STATE_SECRET = "s3cret"
KEYRING_TOKEN = "test-keyring-token"
JWT_SECRET = "test-jwt-secret"


def make_settings(**overrides) -> Settings:
    values = dict(
        app_env="test",
        oauth_state_secret=STATE_SECRET,
        keyring_token=KEYRING_TOKEN,
        jwt_secret=JWT_SECRET,
        database_url="sqlite+aiosqlite://",
        site_url="https://app.example.com",
        oauth_redirect_base="https://api.example.com",
        google_drive_client_id="gd-id",
        google_drive_client_secret="gd-secret",
        shopify_client_id="shop-id",
        shopify_client_secret="shop-secret",
        notion_client_id="notion-id",
        notion_client_secret="notion-secret",
        twitter_client_id="tw-id",
        twitter_client_secret="tw-secret",
        linkedin_client_id="li-id",
        linkedin_client_secret="li-secret",
        instagram_app_id="ig-id",
        instagram_app_secret="ig-secret",
        rate_limit_enabled=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def decrypt(ciphertext: str, keyring_token: str = KEYRING_TOKEN) -> str:
    key = base64.urlsafe_b64encode(hashlib.sha256(keyring_token.encode()).digest())
    return Fernet(key).decrypt(ciphertext.encode()).decode()


class FakeProviders:
    """Callable MockTransport handler that records every outbound request."""

    def __init__(self) -> None:
        self.calls: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = self.default_token_response

    @staticmethod
    def default_token_response(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "access_token": "provider-access-token",
                "refresh_token": "provider-refresh-token",
                "expires_in": 3600,
                "scope": "https://www.googleapis.com/auth/drive.file",
            },
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return self.handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def identity() -> TokenVerifier:
    return TokenVerifier(JWT_SECRET)


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def add_member(session_factory):
    async def _add(user_id: str, org_id: str, role: str = "admin") -> None:
        async with session_factory() as session:
            session.add(Member(user_id=user_id, org_id=org_id, role=role))
            await session.commit()

    return _add


@pytest.fixture
def services(settings, session_factory, providers):
    return build_services(settings, session_factory, transport=providers.transport)


@pytest.fixture
def app(settings, session_factory, providers):
    return create_app(settings, session_factory=session_factory, transport=providers.transport)


@pytest_asyncio.fixture
async def client(app):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as client:
        yield client
