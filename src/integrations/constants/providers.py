"""Accounting providers and token lifecycle constants."""

from enum import Enum

from ..errors import UnsupportedProviderError


class Provider(str, Enum):
    QBO = "qbo"
    XERO = "xero"


class TokenStatus(str, Enum):
    VALID = "VALID"
    EXPIRED = "EXPIRED"
    NO_TOKEN = "NO_TOKEN"
    ERROR = "ERROR"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    EXPIRED = "expired"


# Refresh proactively when a token is this close to expiry.
DEFAULT_REFRESH_BUFFER_MS: int = 5 * 60 * 1000

# Intuit's documented refresh token lifetime (100 days) when a response omits it.
QBO_DEFAULT_REFRESH_TOKEN_EXPIRES_IN: int = 7_776_000

REMEMBER_ME_STATE_PREFIX = "rememberMe=true&"


def parse_provider(value: "Provider | str") -> Provider:
    """Coerce a provider name to the enum, rejecting anything unknown."""
    if isinstance(value, Provider):
        return value
    try:
        return Provider(str(value).strip().lower())
    except ValueError:
        raise UnsupportedProviderError(value) from None
