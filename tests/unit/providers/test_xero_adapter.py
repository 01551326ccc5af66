"""Tests for the Xero adapter against a mocked Xero API."""

import urllib.parse

import httpx
import pytest

from integrations.config import settings
from integrations.errors import (
    OAuthExchangeError,
    ProviderInfoUnavailable,
    RefreshTokenExpired,
    TransientProviderError,
)
from integrations.providers.xero import XERO_CONNECTIONS_URL, XeroAdapter
from tests.helpers import make_xero_record

TOKEN_URL = "https://identity.xero.com/connect/token"
ORGANISATION_URL = "https://api.xero.com/api.xro/2.0/Organisation"
TOKEN_BODY = {"access_token": "at", "refresh_token": "rt", "expires_in": 1800, "token_type": "Bearer"}


def _handler(routes, seen):
    def handle(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        status_code, body = routes.get(url, (404, {"error": "not_found"}))
        return httpx.Response(status_code, json=body)

    return handle


@pytest.fixture
def routes() -> dict:
    return {}


@pytest.fixture
def seen() -> list:
    return []


@pytest.fixture
def adapter(routes, seen, clock) -> XeroAdapter:
    return XeroAdapter(
        xero_settings=settings.xero,
        transport=httpx.MockTransport(_handler(routes, seen)),
        clock=clock,
    )


@pytest.mark.unit
class TestXeroExchange:
    def test_authorization_url_carries_scopes(self, adapter):
        query = dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(adapter.build_authorization_url()).query))

        assert "offline_access" in query["scope"].split()
        assert query["redirect_uri"] == "https://app.test/api/v1/oauth/xero/callback"
        assert not query["state"].startswith("rememberMe")

    async def test_first_granted_tenant_is_used(self, adapter, routes, clock):
        routes[TOKEN_URL] = (200, TOKEN_BODY)
        routes[XERO_CONNECTIONS_URL] = (200, [{"tenantId": "tenant-a"}, {"tenantId": "tenant-b"}])

        record = await adapter.exchange_code_for_token("https://app.test/cb?code=abc")

        assert record.tenant_id == "tenant-a"
        assert record.expires_at == clock() // 1000 + 1800
        assert record.created_at == clock()

    async def test_requested_tenant_is_honoured(self, adapter, routes):
        routes[TOKEN_URL] = (200, TOKEN_BODY)
        routes[XERO_CONNECTIONS_URL] = (200, [{"tenantId": "tenant-a"}, {"tenantId": "tenant-b"}])

        record = await adapter.exchange_code_for_token(
            "https://app.test/cb?code=abc", extra_params={"tenant_id": "tenant-b"}
        )

        assert record.tenant_id == "tenant-b"

    async def test_ungranted_tenant_is_rejected(self, adapter, routes):
        routes[TOKEN_URL] = (200, TOKEN_BODY)
        routes[XERO_CONNECTIONS_URL] = (200, [{"tenantId": "tenant-a"}])

        with pytest.raises(OAuthExchangeError):
            await adapter.exchange_code_for_token("https://app.test/cb?code=abc&tenant_id=tenant-z")

    async def test_no_tenants(self, adapter, routes):
        routes[TOKEN_URL] = (200, TOKEN_BODY)
        routes[XERO_CONNECTIONS_URL] = (200, [])

        with pytest.raises(OAuthExchangeError):
            await adapter.exchange_code_for_token("https://app.test/cb?code=abc")

    async def test_missing_code(self, adapter, seen):
        with pytest.raises(OAuthExchangeError):
            await adapter.exchange_code_for_token("https://app.test/cb?state=s")
        assert seen == []


@pytest.mark.unit
class TestXeroRefresh:
    async def test_refresh_keeps_tenant(self, adapter, routes, clock):
        routes[TOKEN_URL] = (200, {**TOKEN_BODY, "access_token": "new-at", "refresh_token": "new-rt"})
        clock.advance(60)

        record = await adapter.refresh(make_xero_record(clock, expires_in=-1))

        assert record.access_token == "new-at"
        assert record.refresh_token == "new-rt"
        assert record.tenant_id == "tenant-1"
        assert record.expires_at == clock() // 1000 + 1800

    async def test_invalid_grant(self, adapter, routes, clock):
        routes[TOKEN_URL] = (400, {"error": "invalid_grant"})

        with pytest.raises(RefreshTokenExpired):
            await adapter.refresh(make_xero_record(clock))

    async def test_throttled(self, adapter, routes, clock):
        routes[TOKEN_URL] = (429, {"error": "rate_limited"})

        with pytest.raises(TransientProviderError):
            await adapter.refresh(make_xero_record(clock))

    async def test_timeout_is_transient(self, clock):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        adapter = XeroAdapter(xero_settings=settings.xero, transport=httpx.MockTransport(slow))

        with pytest.raises(TransientProviderError):
            await adapter.refresh(make_xero_record(clock))


@pytest.mark.unit
class TestXeroAccountData:
    async def test_organisation_name(self, adapter, routes, seen, clock):
        routes[ORGANISATION_URL] = (200, {"Organisations": [{"Name": "Acme Warehouse NZ"}]})

        info = await adapter.fetch_account_info(make_xero_record(clock))

        assert info.account_name == "Acme Warehouse NZ"
        assert info.provider_account_id == "tenant-1"
        assert seen[0].headers["xero-tenant-id"] == "tenant-1"

    async def test_empty_organisations(self, adapter, routes, clock):
        routes[ORGANISATION_URL] = (200, {"Organisations": []})

        with pytest.raises(ProviderInfoUnavailable):
            await adapter.fetch_account_info(make_xero_record(clock))

    async def test_organisation_outage_is_transient(self, adapter, routes, clock):
        routes[ORGANISATION_URL] = (503, {})

        with pytest.raises(TransientProviderError):
            await adapter.fetch_account_info(make_xero_record(clock))

    async def test_identity(self, adapter, routes, clock):
        routes[adapter.userinfo_url] = (200, {"email": "owner@acme.test", "given_name": "Ada", "family_name": "Picker"})

        identity = await adapter.fetch_identity(make_xero_record(clock))

        assert identity.email == "owner@acme.test"


@pytest.mark.unit
class TestXeroRevokeAndClient:
    async def test_revoke_posts_refresh_token(self, adapter, routes, seen, clock):
        routes[adapter.revoke_url] = (200, {})

        await adapter.revoke(make_xero_record(clock))

        assert dict(urllib.parse.parse_qsl(seen[0].content.decode())) == {"token": "xero-refresh"}

    async def test_revoke_without_refresh_token_is_noop(self, adapter, seen, clock):
        await adapter.revoke(make_xero_record(clock, refresh_token=None))

        assert seen == []

    async def test_revoke_rejection_is_swallowed(self, adapter, routes, clock):
        routes[adapter.revoke_url] = (400, {"error": "unsupported_token_type"})

        await adapter.revoke(make_xero_record(clock))

    async def test_client_sends_tenant_header(self, adapter, routes, seen, clock):
        routes["https://api.xero.com/api.xro/2.0/Invoices"] = (200, {"Invoices": []})

        async with adapter.build_client(make_xero_record(clock)) as client:
            response = await client.get("/Invoices")

        assert response.json() == {"Invoices": []}
        assert seen[0].headers["xero-tenant-id"] == "tenant-1"
        assert seen[0].headers["Authorization"] == "Bearer xero-access"
