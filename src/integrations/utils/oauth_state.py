"""
Signed, time-bound OAuth ``state`` values.

Format: ``[rememberMe=true&]nonce:ts:sig`` where ``sig`` is an HMAC-SHA256 of
``nonce:ts`` keyed with APP_SECRET. The remember-me marker travels in the
state so the callback can recover caller intent without server-side session
storage.
"""

from __future__ import annotations

import hashlib
import hmac
import time
import uuid
from typing import Callable, NamedTuple, Optional

from ..config import settings
from ..constants.providers import REMEMBER_ME_STATE_PREFIX


class InvalidStateError(ValueError):
    """State is malformed, forged or expired."""


class ParsedState(NamedTuple):
    nonce: str
    issued_at: int
    remember_me: bool


def _sign(secret: str, msg: str) -> str:
    return hmac.new(secret.encode(), msg.encode(), hashlib.sha256).hexdigest()


def generate_state(
    remember_me: bool = False,
    *,
    secret: Optional[str] = None,
    clock: Callable[[], float] = time.time,
) -> str:
    secret = secret or settings.app_secret
    nonce = uuid.uuid4().hex
    ts = str(int(clock()))
    msg = f"{nonce}:{ts}"
    state = f"{msg}:{_sign(secret, msg)}"
    if remember_me:
        return f"{REMEMBER_ME_STATE_PREFIX}{state}"
    return state


def is_remember_me(state: Optional[str]) -> bool:
    return bool(state) and state.startswith(REMEMBER_ME_STATE_PREFIX)


def validate_state(
    state: str,
    *,
    secret: Optional[str] = None,
    ttl_seconds: Optional[int] = None,
    clock: Callable[[], float] = time.time,
) -> ParsedState:
    """Verify signature and age; returns the parsed state or raises InvalidStateError."""
    secret = secret or settings.app_secret
    ttl_seconds = settings.tokens.state_ttl_seconds if ttl_seconds is None else ttl_seconds
    if not state:
        raise InvalidStateError("Missing state parameter")

    remember_me = is_remember_me(state)
    raw = state[len(REMEMBER_ME_STATE_PREFIX):] if remember_me else state
    try:
        nonce, ts, sig = raw.split(":")
        issued_at = int(ts)
    except ValueError:
        raise InvalidStateError("Invalid state parameter")

    expected_sig = _sign(secret, f"{nonce}:{ts}")
    if not hmac.compare_digest(sig, expected_sig):
        raise InvalidStateError("State verification failed")

    if int(clock()) - issued_at > ttl_seconds:
        raise InvalidStateError("State expired")

    return ParsedState(nonce=nonce, issued_at=issued_at, remember_me=remember_me)
