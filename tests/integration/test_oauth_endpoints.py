"""OAuth authorize and callback endpoints."""

import urllib.parse

import pytest

from integrations.errors import OAuthExchangeError
from integrations.utils.oauth_state import generate_state

pytestmark = pytest.mark.integration


def _callback(provider: str, state: str, **params) -> str:
    query = urllib.parse.urlencode({"code": "auth-code", "state": state, **params})
    return f"/api/v1/oauth/{provider}/callback?{query}"


async def test_authorize_returns_consent_url(integration_environment):
    response = await integration_environment["client"].get(
        "/api/v1/oauth/xero/authorize", params={"remember_me": "true"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["provider"] == "xero"
    assert body["auth_url"].startswith("https://auth.test/xero/authorize?state=rememberMe=true&")


async def test_callback_connects_new_company(integration_environment):
    client = integration_environment["client"]

    response = await client.get(_callback("qbo", generate_state(remember_me=True), realmId="realm-1"))

    assert response.status_code == 200
    body = response.json()
    assert body["token_stored"] is True
    assert body["remember_me"] is True
    assert body["account_info"] == {"account_name": "Acme Warehouse", "provider_account_id": "realm-1"}
    assert body["identity"]["email"] == "owner@acme.test"

    status = await client.get(f"/api/v1/connections/{body['company_id']}/qbo/status")
    assert status.json()["status"] == "VALID"


async def test_callback_links_existing_company(integration_environment):
    client = integration_environment["client"]

    response = await client.get(_callback("xero", generate_state(), company_id="company-1"))

    assert response.status_code == 200
    assert response.json()["company_id"] == "company-1"
    assert response.json()["remember_me"] is False


async def test_callback_rejects_forged_state(integration_environment):
    client = integration_environment["client"]
    nonce, ts, _ = generate_state().split(":")

    response = await client.get(_callback("qbo", f"{nonce}:{ts}:{'0' * 64}"))

    assert response.status_code == 400
    assert integration_environment["qbo_adapter"].exchanged == []


async def test_callback_requires_state(integration_environment):
    response = await integration_environment["client"].get("/api/v1/oauth/qbo/callback?code=abc")

    assert response.status_code == 422


async def test_callback_exchange_failure(integration_environment):
    client = integration_environment["client"]
    integration_environment["qbo_adapter"].exchange_error = OAuthExchangeError("code already used")

    response = await client.get(_callback("qbo", generate_state(), company_id="company-1"))

    assert response.status_code == 400
    assert response.json()["detail"] == "Authorization could not be completed"
    status = await client.get("/api/v1/connections/company-1/qbo/status")
    assert status.json()["status"] == "NO_TOKEN"
