from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..constants.providers import HealthStatus, Provider, TokenStatus


class AccountInfo(BaseModel):
    account_name: str
    provider_account_id: str


class Identity(BaseModel):
    email: str
    given_name: str
    family_name: str


class TokenStatusResult(BaseModel):
    status: TokenStatus
    message: str
    connection_type: Optional[Provider] = None
    realm_id: Optional[str] = None
    tenant_id: Optional[str] = None
    expires_at: Optional[str] = None


class CompanyConnection(BaseModel):
    type: Provider
    realm_id: Optional[str] = None
    tenant_id: Optional[str] = None
    is_active: bool = False
    status: TokenStatusResult


class AuthorizationResult(BaseModel):
    company_id: str
    provider: Provider
    account_info: AccountInfo
    identity: Identity
    remember_me: bool = False
    token_stored: bool = True


class ApiCallLog(BaseModel):
    user_id: str
    company_id: str
    api_endpoint: str
    connection_type: Provider
    request_method: str
    response_status: int
    ip_address: str = ""
    user_agent: str = ""
    error_message: Optional[str] = None
    response_time: Optional[int] = None


class ApiCallRecord(ApiCallLog):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime


class ConnectionHealthRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    company_id: str
    connection_type: Provider
    status: HealthStatus
    last_checked: datetime
    error_message: Optional[str] = None


class RefreshSummary(BaseModel):
    checked: int = 0
    refreshed: int = 0
    reauth_required: int = 0
    transient_failures: int = 0
