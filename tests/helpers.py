"""Stubs shared by unit and integration tests."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from integrations.constants.providers import HealthStatus, Provider
from integrations.providers.base import ProviderClient
from integrations.schemas.connection import AccountInfo, ApiCallLog, Identity
from integrations.schemas.token import QboTokenRecord, XeroTokenRecord
from integrations.utils.oauth_state import generate_state

DEFAULT_NOW_MS = 1_750_000_000_000


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = DEFAULT_NOW_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


def make_qbo_record(
    clock: FakeClock,
    *,
    age_seconds: int = 0,
    expires_in: int = 3600,
    access_token: str = "qbo-access",
    refresh_token: Optional[str] = "qbo-refresh",
    realm_id: str = "realm-1",
) -> QboTokenRecord:
    return QboTokenRecord(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        realm_id=realm_id,
        created_at=clock() - age_seconds * 1000,
    )


def make_xero_record(
    clock: FakeClock,
    *,
    expires_in: int = 1800,
    access_token: str = "xero-access",
    refresh_token: Optional[str] = "xero-refresh",
    tenant_id: str = "tenant-1",
) -> XeroTokenRecord:
    return XeroTokenRecord(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=clock() // 1000 + expires_in,
        tenant_id=tenant_id,
        created_at=clock(),
    )


class RecordingAuditService:
    """In-memory audit sink capturing health transitions and API call logs."""

    def __init__(self) -> None:
        self.health: List[Dict[str, Any]] = []
        self.api_calls: List[ApiCallLog] = []

    async def log_api_call(self, entry: ApiCallLog) -> None:
        self.api_calls.append(entry)

    async def update_connection_health(
        self,
        company_id: str,
        provider: Provider,
        status: HealthStatus,
        error_message: Optional[str] = None,
    ) -> None:
        self.health.append(
            {
                "company_id": company_id,
                "provider": provider,
                "status": status,
                "error_message": error_message,
            }
        )

    def last_health(self) -> Optional[HealthStatus]:
        return self.health[-1]["status"] if self.health else None


class StubAdapter:
    """Provider adapter double with scriptable refresh behaviour."""

    def __init__(self, provider: Provider, clock: FakeClock):
        self.provider = provider
        self.clock = clock
        self.account_id = "realm-1" if provider is Provider.QBO else "tenant-1"
        self.account_name = "Acme Warehouse"
        self.refresh_calls = 0
        self.refresh_error: Optional[Exception] = None
        self.refresh_gate: Optional[asyncio.Event] = None
        self.exchanged: List[str] = []
        self.exchange_error: Optional[Exception] = None
        self.info_error: Optional[Exception] = None
        self.identity_error: Optional[Exception] = None
        self.revoked: List[str] = []
        self.revoke_error: Optional[Exception] = None

    def _record(self, access_token: str, refresh_token: str):
        if self.provider is Provider.QBO:
            return QboTokenRecord(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_in=3600,
                realm_id=self.account_id,
                created_at=self.clock(),
            )
        return XeroTokenRecord(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=self.clock() // 1000 + 1800,
            tenant_id=self.account_id,
            created_at=self.clock(),
        )

    def build_authorization_url(self, remember_me: bool = False) -> str:
        return f"https://auth.test/{self.provider.value}/authorize?state={generate_state(remember_me)}"

    async def exchange_code_for_token(self, callback_url, extra_params=None):
        self.exchanged.append(callback_url)
        if self.exchange_error:
            raise self.exchange_error
        return self._record("a", "r")

    async def fetch_account_info(self, token) -> AccountInfo:
        if self.info_error:
            raise self.info_error
        return AccountInfo(account_name=self.account_name, provider_account_id=self.account_id)

    async def fetch_identity(self, token) -> Identity:
        if self.identity_error:
            raise self.identity_error
        return Identity(email="owner@acme.test", given_name="Ada", family_name="Picker")

    async def refresh(self, token):
        self.refresh_calls += 1
        if self.refresh_gate is not None:
            await self.refresh_gate.wait()
        if self.refresh_error:
            raise self.refresh_error
        return self._record(f"refreshed-access-{self.refresh_calls}", f"refreshed-refresh-{self.refresh_calls}")

    async def revoke(self, token) -> None:
        self.revoked.append(token.access_token)
        if self.revoke_error:
            raise self.revoke_error

    def build_client(self, token) -> ProviderClient:
        return ProviderClient(
            provider=self.provider,
            base_url=f"https://api.test/{self.provider.value}",
            access_token=token.access_token,
            account_id=token.account_id,
        )
