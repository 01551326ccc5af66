"""Xero OAuth2 adapter."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from .base import BaseProviderAdapter, ProviderClient, parse_callback_params
from ..config import XeroSettings
from ..constants.providers import Provider
from ..errors import OAuthExchangeError, ProviderInfoUnavailable
from ..schemas.connection import AccountInfo, Identity
from ..schemas.token import XeroTokenRecord
from ..utils.time import now_millis

logger = logging.getLogger(__name__)

XERO_API_BASE = "https://api.xero.com/api.xro/2.0"
XERO_CONNECTIONS_URL = "https://api.xero.com/connections"
TENANT_HEADER = "xero-tenant-id"


class XeroAdapter(BaseProviderAdapter):
    provider = Provider.XERO
    authorize_url = "https://login.xero.com/identity/connect/authorize"
    token_url = "https://identity.xero.com/connect/token"
    revoke_url = "https://identity.xero.com/connect/revocation"
    userinfo_url = "https://identity.xero.com/connect/userinfo"

    def __init__(
        self,
        *,
        xero_settings: XeroSettings,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], int] = now_millis,
    ):
        super().__init__(
            client_id=xero_settings.client_id,
            client_secret=xero_settings.client_secret,
            redirect_uri=xero_settings.redirect_uri,
            scopes=list(xero_settings.scopes),
            timeout_seconds=timeout_seconds,
            transport=transport,
            clock=clock,
        )

    def _record(self, payload: Dict[str, Any], tenant_id: Optional[str]) -> XeroTokenRecord:
        created_at = self._clock()
        expires_in = payload.get("expires_in")
        expires_at = created_at // 1000 + int(expires_in) if expires_in else payload.get("expires_at")
        return XeroTokenRecord(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            token_type=payload.get("token_type", "Bearer"),
            scope=payload.get("scope"),
            id_token=payload.get("id_token"),
            expires_at=expires_at,
            tenant_id=tenant_id,
            created_at=created_at,
        )

    async def _list_tenants(self, access_token: str) -> List[Dict[str, Any]]:
        status, body = await self._get_json(XERO_CONNECTIONS_URL, access_token)
        if status != 200 or not isinstance(body, list):
            logger.warning("Xero connections request failed | status=%s", status)
            return []
        return [item for item in body if isinstance(item, dict) and item.get("tenantId")]

    async def exchange_code_for_token(
        self,
        callback_url: str,
        extra_params: Optional[Mapping[str, str]] = None,
    ) -> XeroTokenRecord:
        params = parse_callback_params(callback_url, extra_params)
        payload = await self._exchange_code(params["code"])

        tenants = await self._list_tenants(payload["access_token"])
        if not tenants:
            raise OAuthExchangeError("Xero authorization granted no tenants")

        wanted = params.get("tenant_id")
        tenant_ids = [tenant["tenantId"] for tenant in tenants]
        if wanted and wanted not in tenant_ids:
            raise OAuthExchangeError(f"Xero tenant {wanted} was not granted")
        tenant_id = wanted or tenant_ids[0]

        logger.info("Xero authorization code exchanged | tenant_id=%s | tenants=%s", tenant_id, len(tenants))
        return self._record(payload, tenant_id)

    async def refresh(self, token: XeroTokenRecord) -> XeroTokenRecord:
        payload = await self._refresh_grant(token.refresh_token)
        return self._record(payload, token.tenant_id)

    async def fetch_account_info(self, token: XeroTokenRecord) -> AccountInfo:
        if not token.tenant_id:
            raise ProviderInfoUnavailable("Xero token has no tenant id")

        status, body = await self._get_json(
            f"{XERO_API_BASE}/Organisation",
            token.access_token,
            headers={TENANT_HEADER: token.tenant_id},
        )
        if status != 200 or not isinstance(body, dict):
            logger.warning("Xero organisation unavailable | tenant_id=%s | status=%s", token.tenant_id, status)
            raise ProviderInfoUnavailable(f"Xero organisation request returned {status}")

        organisations = body.get("Organisations") or []
        name = organisations[0].get("Name") if organisations else None
        if not name:
            raise ProviderInfoUnavailable("Xero returned no organisation for tenant")
        return AccountInfo(account_name=name, provider_account_id=token.tenant_id)

    async def fetch_identity(self, token: XeroTokenRecord) -> Identity:
        status, body = await self._get_json(self.userinfo_url, token.access_token)
        if status != 200 or not isinstance(body, dict):
            raise OAuthExchangeError(f"Xero userinfo request returned {status}")

        email = body.get("email")
        given_name = body.get("given_name")
        family_name = body.get("family_name")
        if not (email and given_name and family_name):
            raise OAuthExchangeError("Xero userinfo is missing email or name")
        return Identity(email=email, given_name=given_name, family_name=family_name)

    async def revoke(self, token: XeroTokenRecord) -> None:
        if not token.refresh_token:
            return
        await self._revoke(data={"token": token.refresh_token})

    def build_client(self, token: XeroTokenRecord) -> ProviderClient:
        return ProviderClient(
            provider=self.provider,
            base_url=XERO_API_BASE,
            access_token=token.access_token,
            account_id=token.tenant_id,
            headers={TENANT_HEADER: token.tenant_id or ""},
            timeout=self.timeout_seconds,
            transport=self._transport,
        )
