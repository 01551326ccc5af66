"""
Decrypted token records.

A record is a discriminated union keyed on ``provider``. Each variant
normalises its own expiry representation to an absolute instant so the
validator and the token manager never branch on provider shape.
"""

from __future__ import annotations

import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..constants.providers import Provider, QBO_DEFAULT_REFRESH_TOKEN_EXPIRES_IN


class _TokenRecordBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = ""
    refresh_token: Optional[str] = None
    token_type: Optional[str] = "bearer"
    scope: Optional[str] = None
    created_at: Optional[int] = Field(default=None, description="Issued-at, epoch milliseconds")

    def expires_at_millis(self) -> Optional[int]:
        raise NotImplementedError

    def is_expired(self, now_ms: int, buffer_ms: int = 0) -> bool:
        expires_at = self.expires_at_millis()
        if expires_at is None:
            return True
        return expires_at <= now_ms + buffer_ms

    @property
    def account_id(self) -> Optional[str]:
        raise NotImplementedError

    def to_json(self) -> str:
        return self.model_dump_json()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(provider={self.provider!r}, account_id={self.account_id!r}, "
            f"created_at={self.created_at!r}, expires_at={self.expires_at_millis()!r})"
        )

    __str__ = __repr__


class QboTokenRecord(_TokenRecordBase):
    provider: Literal["qbo"] = "qbo"
    expires_in: Optional[int] = Field(default=None, description="Seconds, relative to created_at")
    x_refresh_token_expires_in: Optional[int] = QBO_DEFAULT_REFRESH_TOKEN_EXPIRES_IN
    realm_id: Optional[str] = None

    def expires_at_millis(self) -> Optional[int]:
        if not self.expires_in or self.created_at is None:
            return None
        return self.created_at + self.expires_in * 1000

    @property
    def account_id(self) -> Optional[str]:
        return self.realm_id


class XeroTokenRecord(_TokenRecordBase):
    provider: Literal["xero"] = "xero"
    expires_at: Optional[int] = Field(default=None, description="Absolute expiry, epoch seconds")
    tenant_id: Optional[str] = None
    id_token: Optional[str] = None

    def expires_at_millis(self) -> Optional[int]:
        if not self.expires_at:
            return None
        return self.expires_at * 1000

    @property
    def account_id(self) -> Optional[str]:
        return self.tenant_id


TokenRecord = Annotated[Union[QboTokenRecord, XeroTokenRecord], Field(discriminator="provider")]

_token_record_adapter: TypeAdapter[TokenRecord] = TypeAdapter(TokenRecord)


class TokenParseError(ValueError):
    """Decrypted payload is not a token record for the expected provider."""


def parse_token_record(payload: str, provider: Provider) -> QboTokenRecord | XeroTokenRecord:
    """Parse a decrypted blob, tagging legacy payloads that predate the provider field."""
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise TokenParseError("Token payload is not valid JSON") from exc
    if not isinstance(data, dict):
        raise TokenParseError("Token payload is not a JSON object")

    data.setdefault("provider", provider.value)
    if data["provider"] != provider.value:
        raise TokenParseError(f"Token payload belongs to {data['provider']!r}, expected {provider.value!r}")

    try:
        return _token_record_adapter.validate_python(data)
    except ValidationError as exc:
        raise TokenParseError(f"Token payload failed validation ({exc.error_count()} errors)") from exc
