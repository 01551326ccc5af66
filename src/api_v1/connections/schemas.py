from typing import Optional

from pydantic import BaseModel

from integrations.constants.providers import Provider


class ReauthStatusResponse(BaseModel):
    provider: Provider
    reauth_required: bool
    auth_url: Optional[str] = None


class ClientReadyResponse(BaseModel):
    provider: Provider
    account_id: Optional[str]
    base_url: str


class DisconnectResponse(BaseModel):
    provider: Provider
    disconnected: bool = True
