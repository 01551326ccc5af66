"""Pure expiry checks for decrypted token records."""

from __future__ import annotations

from typing import Optional

from ..constants.providers import DEFAULT_REFRESH_BUFFER_MS
from ..schemas.token import QboTokenRecord, XeroTokenRecord


def expires_at_millis(record: QboTokenRecord | XeroTokenRecord) -> Optional[int]:
    """Absolute expiry instant, or None when the record lacks issue/expiry data."""
    if record.created_at is None:
        return None
    return record.expires_at_millis()


def is_token_valid(
    record: Optional[QboTokenRecord | XeroTokenRecord],
    now_ms: int,
    buffer_ms: int = DEFAULT_REFRESH_BUFFER_MS,
) -> bool:
    """
    True when the access token is usable for at least ``buffer_ms`` more.

    Fails closed: a missing access token, expiry or issue time is invalid.
    The boundary is strict, so ``expires_at == now + buffer`` is invalid.
    """
    if record is None or not record.access_token:
        return False
    expires_at = expires_at_millis(record)
    if expires_at is None:
        return False
    return expires_at > now_ms + buffer_ms
