"""QuickBooks Online (Intuit) OAuth2 adapter."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from .base import BaseProviderAdapter, ProviderClient, parse_callback_params
from ..config import QuickBooksSettings
from ..constants.providers import Provider, QBO_DEFAULT_REFRESH_TOKEN_EXPIRES_IN
from ..errors import OAuthExchangeError, ProviderInfoUnavailable
from ..schemas.connection import AccountInfo, Identity
from ..schemas.token import QboTokenRecord
from ..utils.time import now_millis

logger = logging.getLogger(__name__)

QBO_SCOPES = ["com.intuit.quickbooks.accounting", "openid", "profile", "email"]
QBO_MINOR_VERSION = "75"

_API_HOSTS = {
    "sandbox": "https://sandbox-quickbooks.api.intuit.com",
    "production": "https://quickbooks.api.intuit.com",
}
_USERINFO_URLS = {
    "sandbox": "https://sandbox-accounts.platform.intuit.com/v1/openid_connect/userinfo",
    "production": "https://accounts.platform.intuit.com/v1/openid_connect/userinfo",
}


class QuickBooksAdapter(BaseProviderAdapter):
    provider = Provider.QBO
    authorize_url = "https://appcenter.intuit.com/connect/oauth2"
    token_url = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
    revoke_url = "https://developer.api.intuit.com/v2/oauth2/tokens/revoke"

    def __init__(
        self,
        *,
        qbo_settings: QuickBooksSettings,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], int] = now_millis,
    ):
        super().__init__(
            client_id=qbo_settings.client_id,
            client_secret=qbo_settings.client_secret,
            redirect_uri=qbo_settings.redirect_uri,
            scopes=QBO_SCOPES,
            timeout_seconds=timeout_seconds,
            transport=transport,
            clock=clock,
        )
        self.environment = qbo_settings.environment
        self.api_host = _API_HOSTS[self.environment]
        self.userinfo_url = _USERINFO_URLS[self.environment]

    def _record(self, payload: Dict[str, Any], realm_id: Optional[str]) -> QboTokenRecord:
        return QboTokenRecord(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            token_type=payload.get("token_type", "bearer"),
            scope=payload.get("scope"),
            expires_in=payload.get("expires_in"),
            x_refresh_token_expires_in=payload.get(
                "x_refresh_token_expires_in", QBO_DEFAULT_REFRESH_TOKEN_EXPIRES_IN
            ),
            realm_id=realm_id,
            created_at=self._clock(),
        )

    async def exchange_code_for_token(
        self,
        callback_url: str,
        extra_params: Optional[Mapping[str, str]] = None,
    ) -> QboTokenRecord:
        params = parse_callback_params(callback_url, extra_params)
        realm_id = params.get("realmId")
        if not realm_id:
            raise OAuthExchangeError("QuickBooks callback is missing realmId")

        payload = await self._exchange_code(params["code"])
        logger.info("QuickBooks authorization code exchanged | realm_id=%s", realm_id)
        return self._record(payload, realm_id)

    async def refresh(self, token: QboTokenRecord) -> QboTokenRecord:
        payload = await self._refresh_grant(token.refresh_token)
        # Intuit rotates refresh tokens; keep the old one only if none came back.
        if not payload.get("refresh_token"):
            payload = {**payload, "refresh_token": token.refresh_token}
        return self._record(payload, token.realm_id)

    async def fetch_account_info(self, token: QboTokenRecord) -> AccountInfo:
        if not token.realm_id:
            raise ProviderInfoUnavailable("QuickBooks token has no realm id")

        url = f"{self.api_host}/v3/company/{token.realm_id}/companyinfo/{token.realm_id}"
        status, body = await self._get_json(url, token.access_token)
        if status != 200 or not isinstance(body, dict):
            logger.warning("QuickBooks company info unavailable | realm_id=%s | status=%s", token.realm_id, status)
            raise ProviderInfoUnavailable(f"QuickBooks company info request returned {status}")

        company_info = body.get("CompanyInfo") or {}
        name = company_info.get("CompanyName") or company_info.get("LegalName")
        if not name:
            raise ProviderInfoUnavailable("QuickBooks company info has no company name")
        return AccountInfo(account_name=name, provider_account_id=token.realm_id)

    async def fetch_identity(self, token: QboTokenRecord) -> Identity:
        status, body = await self._get_json(self.userinfo_url, token.access_token)
        if status != 200 or not isinstance(body, dict):
            raise OAuthExchangeError(f"QuickBooks userinfo request returned {status}")

        email = body.get("email")
        given_name = body.get("givenName")
        family_name = body.get("familyName")
        if not (email and given_name and family_name):
            raise OAuthExchangeError("QuickBooks userinfo is missing email or name")
        return Identity(email=email, given_name=given_name, family_name=family_name)

    async def revoke(self, token: QboTokenRecord) -> None:
        value = token.refresh_token or token.access_token
        if not value:
            return
        await self._revoke(json={"token": value})

    def build_client(self, token: QboTokenRecord) -> ProviderClient:
        return ProviderClient(
            provider=self.provider,
            base_url=f"{self.api_host}/v3/company/{token.realm_id}",
            access_token=token.access_token,
            account_id=token.realm_id,
            params={"minorversion": QBO_MINOR_VERSION},
            timeout=self.timeout_seconds,
            transport=self._transport,
        )
