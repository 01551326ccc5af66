from typing import Optional

from pydantic import BaseModel

from integrations.constants.providers import Provider
from integrations.schemas.connection import AccountInfo, Identity


class AuthUrlResponse(BaseModel):
    provider: Provider
    auth_url: str


class CallbackResponse(BaseModel):
    company_id: str
    provider: Provider
    account_info: AccountInfo
    identity: Identity
    remember_me: bool
    token_stored: bool


class OAuthErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None
