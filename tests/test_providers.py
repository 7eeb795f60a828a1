"""
Tests for provider adapters and the exchange registry.

Provider endpoints are faked with ``httpx.MockTransport``; every outbound
request is captured in ``providers.calls``.
"""

import base64
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from conftest import make_settings
from connectors.errors import ValidationError
from connectors.registry import ProviderExchangeRegistry
from connectors.schemas import CredentialBundle, ExchangeError, ExchangeErrorKind, ProviderId
from connectors.shopify import ShopifyConnector, normalize_shop_domain
from connectors.twitter import TwitterConnector, pkce_challenge

REDIRECT = "https://api.example.com/api/v1/integrations/callback?provider=x"


@pytest.fixture
def registry(settings, providers):
    return ProviderExchangeRegistry(settings, transport=providers.transport)


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def _basic(request: httpx.Request) -> str:
    scheme, _, encoded = request.headers["authorization"].partition(" ")
    assert scheme == "Basic"
    return base64.b64decode(encoded).decode()


# ── Wire formats ─────────────────────────────────────────────────────


class TestWireFormats:
    @pytest.mark.asyncio
    async def test_google_drive_form_body(self, registry, providers):
        result = await registry.exchange(ProviderId.GOOGLE_DRIVE, "code-1", REDIRECT)

        assert isinstance(result, CredentialBundle)
        (request,) = providers.calls
        assert request.method == "POST"
        assert str(request.url) == "https://oauth2.googleapis.com/token"
        assert request.headers["content-type"].startswith("application/x-www-form-urlencoded")
        form = _form(request)
        assert form["code"] == "code-1"
        assert form["client_id"] == "gd-id"
        assert form["client_secret"] == "gd-secret"
        assert form["redirect_uri"] == REDIRECT
        assert form["grant_type"] == "authorization_code"

    @pytest.mark.asyncio
    async def test_linkedin_form_body(self, registry, providers):
        await registry.exchange(ProviderId.LINKEDIN, "code-2", REDIRECT)

        (request,) = providers.calls
        assert request.url.host == "www.linkedin.com"
        form = _form(request)
        assert form["client_id"] == "li-id"
        assert form["code"] == "code-2"

    @pytest.mark.asyncio
    async def test_twitter_basic_auth_and_verifier(self, registry, providers):
        await registry.exchange(ProviderId.TWITTER, "code-3", REDIRECT, state="user-1:1:abc")

        (request,) = providers.calls
        assert str(request.url) == "https://api.twitter.com/2/oauth2/token"
        assert _basic(request) == "tw-id:tw-secret"
        form = _form(request)
        assert len(form["code_verifier"]) == 43
        assert "client_secret" not in form

    @pytest.mark.asyncio
    async def test_twitter_verifier_matches_auth_url_challenge(self, registry, providers):
        connector = registry.get(ProviderId.TWITTER)
        state = "user-1:1700000000000:abc"
        query = parse_qs(urlparse(connector.get_auth_url(state, REDIRECT)).query)

        await registry.exchange(ProviderId.TWITTER, "code", REDIRECT, state=state)

        verifier = _form(providers.calls[0])["code_verifier"]
        assert query["code_challenge_method"] == ["S256"]
        assert query["code_challenge"] == [pkce_challenge(verifier)]
        assert verifier != "challenge"

    def test_twitter_verifier_differs_per_state(self):
        connector = TwitterConnector("tw-id", "tw-secret")
        assert connector.pkce_verifier("user-1:1:a") != connector.pkce_verifier("user-1:2:b")
        assert TwitterConnector("tw-id", "other").pkce_verifier("s") != connector.pkce_verifier("s")

    @pytest.mark.asyncio
    async def test_twitter_without_state_makes_no_call(self, registry, providers):
        result = await registry.exchange(ProviderId.TWITTER, "code", REDIRECT)

        assert result.kind is ExchangeErrorKind.INVALID_PROVIDER_HINT
        assert providers.calls == []

    @pytest.mark.asyncio
    async def test_notion_json_body_and_workspace_metadata(self, registry, providers):
        providers.handler = lambda request: httpx.Response(
            200,
            json={
                "access_token": "notion-token",
                "workspace_id": "ws-1",
                "workspace_name": "Acme",
                "bot_id": "bot-1",
            },
        )

        result = await registry.exchange(ProviderId.NOTION, "code-4", REDIRECT)

        (request,) = providers.calls
        assert _basic(request) == "notion-id:notion-secret"
        body = json.loads(request.content)
        assert body == {"grant_type": "authorization_code", "code": "code-4", "redirect_uri": REDIRECT}
        assert result.metadata == {"workspace_id": "ws-1", "workspace_name": "Acme", "bot_id": "bot-1"}
        assert result.expires_at is None
        assert result.refresh_token is None

    @pytest.mark.asyncio
    async def test_shopify_posts_to_shop_domain(self, registry, providers):
        providers.handler = lambda request: httpx.Response(
            200, json={"access_token": "shpat_x", "scope": "read_products"}
        )

        result = await registry.exchange(ProviderId.SHOPIFY, "code-5", REDIRECT, "acme.myshopify.com")

        (request,) = providers.calls
        assert str(request.url) == "https://acme.myshopify.com/admin/oauth/access_token"
        assert json.loads(request.content) == {
            "client_id": "shop-id",
            "client_secret": "shop-secret",
            "code": "code-5",
        }
        assert result.metadata == {"shop": "acme.myshopify.com"}
        assert result.scope == "read_products"
        assert result.expires_at is None


class TestShopifyDomain:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("acme.myshopify.com", "acme.myshopify.com"),
            ("https://acme.myshopify.com/", "acme.myshopify.com"),
            ("my-store-2.myshopify.com", "my-store-2.myshopify.com"),
            ("evil.com", None),
            ("acme.myshopify.com.evil.com", None),
            ("-acme.myshopify.com", None),
            ("Acme.myshopify.com", None),
            ("", None),
            (None, None),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_shop_domain(raw) == expected

    @pytest.mark.asyncio
    async def test_invalid_hint_fails_without_network_call(self, registry, providers):
        result = await registry.exchange(ProviderId.SHOPIFY, "code", REDIRECT, "evil.com")

        assert isinstance(result, ExchangeError)
        assert result.kind is ExchangeErrorKind.INVALID_PROVIDER_HINT
        assert providers.calls == []

    def test_auth_url_requires_shop(self):
        connector = ShopifyConnector("shop-id", "shop-secret")
        with pytest.raises(ValidationError) as exc_info:
            connector.get_auth_url("state", REDIRECT, None)
        assert exc_info.value.fields == ["shop"]

    def test_auth_url_targets_shop(self):
        url = ShopifyConnector("shop-id", "shop-secret").get_auth_url(
            "state-1", REDIRECT, "acme.myshopify.com"
        )
        parsed = urlparse(url)
        assert parsed.netloc == "acme.myshopify.com"
        assert parse_qs(parsed.query)["state"] == ["state-1"]


class TestInstagram:
    @pytest.mark.asyncio
    async def test_upgrades_to_long_lived_token(self, registry, providers):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"access_token": "short", "expires_in": 3600})
            return httpx.Response(200, json={"access_token": "long", "expires_in": 5184000})

        providers.handler = handler
        result = await registry.exchange(ProviderId.INSTAGRAM, "code", REDIRECT)

        assert [r.method for r in providers.calls] == ["POST", "GET"]
        upgrade = providers.calls[1]
        assert upgrade.url.params["grant_type"] == "fb_exchange_token"
        assert upgrade.url.params["fb_exchange_token"] == "short"
        assert result.access_token.get_secret_value() == "long"
        assert result.metadata == {"long_lived": True}
        assert result.expires_at > datetime.now(timezone.utc) + timedelta(days=59)

    @pytest.mark.asyncio
    async def test_failed_upgrade_keeps_short_lived_token(self, registry, providers):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"access_token": "short", "expires_in": 3600})
            return httpx.Response(400, json={"error": {"message": "bad"}})

        providers.handler = handler
        result = await registry.exchange(ProviderId.INSTAGRAM, "code", REDIRECT)

        assert isinstance(result, CredentialBundle)
        assert result.access_token.get_secret_value() == "short"
        assert result.metadata == {"long_lived": False}


# ── Registry behavior ────────────────────────────────────────────────


class TestRegistryExchange:
    @pytest.mark.asyncio
    async def test_success_computes_expiry(self, registry):
        before = datetime.now(timezone.utc)
        result = await registry.exchange(ProviderId.GOOGLE_DRIVE, "code", REDIRECT)

        assert isinstance(result, CredentialBundle)
        assert result.organization_id == ""
        assert result.access_token.get_secret_value() == "provider-access-token"
        assert result.refresh_token.get_secret_value() == "provider-refresh-token"
        assert before + timedelta(seconds=3600) <= result.expires_at
        assert result.expires_at <= datetime.now(timezone.utc) + timedelta(seconds=3600)

    @pytest.mark.asyncio
    async def test_unknown_provider_makes_no_call(self, registry, providers):
        result = await registry.exchange("myspace", "code", REDIRECT)

        assert result.kind is ExchangeErrorKind.UNSUPPORTED_PROVIDER
        assert providers.calls == []

    @pytest.mark.asyncio
    async def test_unconfigured_provider_is_unsupported(self, providers):
        settings = make_settings(notion_client_id="", notion_client_secret="")
        registry = ProviderExchangeRegistry(settings, transport=providers.transport)

        result = await registry.exchange(ProviderId.NOTION, "code", REDIRECT)

        assert result.kind is ExchangeErrorKind.UNSUPPORTED_PROVIDER
        assert providers.calls == []

    @pytest.mark.asyncio
    async def test_non_2xx_is_rejected_with_status(self, registry, providers):
        providers.handler = lambda request: httpx.Response(400, json={"error": "invalid_grant"})

        result = await registry.exchange(ProviderId.GOOGLE_DRIVE, "used-code", REDIRECT)

        assert result.kind is ExchangeErrorKind.PROVIDER_REJECTED
        assert result.provider_status == 400
        assert result.provider == "google_drive"
        assert "invalid_grant" in result.detail

    @pytest.mark.asyncio
    async def test_error_in_200_body_is_rejected(self, registry, providers):
        providers.handler = lambda request: httpx.Response(200, json={"error": "bad_verification_code"})

        result = await registry.exchange(ProviderId.LINKEDIN, "code", REDIRECT)

        assert result.kind is ExchangeErrorKind.PROVIDER_REJECTED
        assert result.provider_status == 200

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self, registry, providers):
        providers.handler = lambda request: httpx.Response(200, text="<html>ok</html>")

        result = await registry.exchange(ProviderId.GOOGLE_DRIVE, "code", REDIRECT)

        assert result.kind is ExchangeErrorKind.MALFORMED_RESPONSE

    @pytest.mark.asyncio
    async def test_missing_access_token_is_malformed(self, registry, providers):
        providers.handler = lambda request: httpx.Response(200, json={"token_type": "bearer"})

        result = await registry.exchange(ProviderId.GOOGLE_DRIVE, "code", REDIRECT)

        assert result.kind is ExchangeErrorKind.MALFORMED_RESPONSE

    @pytest.mark.asyncio
    async def test_unparseable_expiry_is_malformed(self, registry, providers):
        providers.handler = lambda request: httpx.Response(
            200, json={"access_token": "t", "expires_in": "soon"}
        )

        result = await registry.exchange(ProviderId.GOOGLE_DRIVE, "code", REDIRECT)

        assert result.kind is ExchangeErrorKind.MALFORMED_RESPONSE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"access_token": 12345},
            {"access_token": "tok", "expires_in": 10**20},
            {"access_token": "tok", "scope": ["a", "b"]},
            {"access_token": "tok", "refresh_token": {"nested": True}},
        ],
    )
    async def test_schema_invalid_2xx_body_is_malformed(self, registry, providers, body):
        providers.handler = lambda request: httpx.Response(200, json=body)

        result = await registry.exchange(ProviderId.GOOGLE_DRIVE, "code", REDIRECT)

        assert isinstance(result, ExchangeError)
        assert result.kind is ExchangeErrorKind.MALFORMED_RESPONSE
        assert result.provider == "google_drive"

    @pytest.mark.asyncio
    async def test_timeout_is_unreachable_and_not_retried(self, registry, providers):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        providers.handler = handler
        result = await registry.exchange(ProviderId.GOOGLE_DRIVE, "code", REDIRECT)

        assert result.kind is ExchangeErrorKind.PROVIDER_UNREACHABLE
        assert len(providers.calls) == 1

    @pytest.mark.asyncio
    async def test_connection_error_is_rejected_without_status(self, registry, providers):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        providers.handler = handler
        result = await registry.exchange(ProviderId.NOTION, "code", REDIRECT)

        assert result.kind is ExchangeErrorKind.PROVIDER_REJECTED
        assert result.provider_status is None
        assert len(providers.calls) == 1

    @pytest.mark.asyncio
    async def test_rejected_code_is_not_retried(self, registry, providers):
        providers.handler = lambda request: httpx.Response(500, text="upstream error")

        await registry.exchange(ProviderId.GOOGLE_DRIVE, "code", REDIRECT)

        assert len(providers.calls) == 1


class TestRegistryListing:
    def test_list_providers_covers_every_provider(self, registry):
        listed = {p["provider"]: p for p in registry.list_providers()}
        assert set(listed) == {p.value for p in ProviderId}
        assert all(p["configured"] for p in listed.values())
        assert listed["google_drive"]["display_name"] == "Google Drive"

    def test_unconfigured_providers_are_listed_but_not_gettable(self):
        registry = ProviderExchangeRegistry(make_settings(twitter_client_id=""))
        listed = {p["provider"]: p["configured"] for p in registry.list_providers()}
        assert listed["twitter"] is False
        assert registry.get("twitter") is None
        assert "twitter" not in registry.list_configured()
        assert registry.get("notion") is not None

    def test_get_unknown(self, registry):
        assert registry.get("myspace") is None
        assert registry.get(None) is None
