"""
Error taxonomy for the accounting connection lifecycle.

Callers of the token manager only ever see two kinds of failure:

- ReauthRequired: permanent, the user must repeat the OAuth consent flow.
- TransientProviderError: retryable, the connection itself is still fine.

The remaining errors are raised by the cipher and the provider adapters and
are reclassified into one of the two at the token manager boundary.
"""

from __future__ import annotations

from typing import Optional


class IntegrationError(Exception):
    """Base class for all connection lifecycle errors."""


class UnsupportedProviderError(IntegrationError, ValueError):
    def __init__(self, provider: object):
        self.provider = getattr(provider, "value", provider)
        super().__init__(f"Unsupported connection type: {self.provider}")


class ReauthRequired(IntegrationError):
    """The stored credential cannot be used or refreshed."""

    def __init__(self, provider: str, company_id: Optional[str] = None, reason: Optional[str] = None):
        provider = getattr(provider, "value", provider)
        self.provider = provider
        self.company_id = company_id
        self.reason = reason
        self.code = f"{provider.upper()}_REAUTH_REQUIRED"
        super().__init__(reason or self.code)


class TransientProviderError(IntegrationError):
    """Network, timeout, rate-limit or 5xx failure talking to a provider."""

    def __init__(self, message: str, *, provider: Optional[str] = None, status_code: Optional[int] = None):
        self.provider = getattr(provider, "value", provider)
        self.status_code = status_code
        super().__init__(message)


class DecryptionError(IntegrationError):
    """Ciphertext was tampered with, encrypted under another key, or malformed."""


class OAuthExchangeError(IntegrationError):
    """The provider rejected an authorization code or the callback was unusable."""


class ProviderInfoUnavailable(IntegrationError):
    """The provider returned no usable company/organisation record."""


class RefreshTokenExpired(IntegrationError):
    """The provider reported the refresh token itself as invalid or expired."""


class AuditQueryError(IntegrationError):
    """Reading audit or health records failed."""
