"""
Provider adapter protocols.

The token manager depends only on these capabilities; QuickBooks and Xero
specifics (endpoints, payload shapes, SDK quirks) stay inside the adapters.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol

import httpx

from ..constants.providers import Provider
from ..schemas.connection import AccountInfo, Identity
from ..schemas.token import QboTokenRecord, XeroTokenRecord

TokenRecordT = QboTokenRecord | XeroTokenRecord


class IProviderClient(Protocol):
    """Ready-to-call handle for a provider's accounting API."""

    provider: Provider
    account_id: Optional[str]

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        ...

    async def aclose(self) -> None:
        ...


class IProviderAdapter(Protocol):
    """Capability set every accounting provider exposes to the token manager."""

    provider: Provider

    def build_authorization_url(self, remember_me: bool = False) -> str:
        """
        Build the consent redirect URL.

        Args:
            remember_me: Prefix the anti-forgery state with the remember-me marker

        Returns:
            Absolute authorization URL
        """
        ...

    async def exchange_code_for_token(
        self,
        callback_url: str,
        extra_params: Optional[Mapping[str, str]] = None,
    ) -> TokenRecordT:
        """
        Exchange the authorization code carried by the callback URL.

        Raises:
            OAuthExchangeError: Code rejected or callback URL unusable
            TransientProviderError: Network failure, 429 or 5xx
        """
        ...

    async def fetch_account_info(self, token: TokenRecordT) -> AccountInfo:
        """
        Raises:
            ProviderInfoUnavailable: No usable company/organisation record
        """
        ...

    async def fetch_identity(self, token: TokenRecordT) -> Identity:
        """
        Raises:
            OAuthExchangeError: Required identity fields are absent
        """
        ...

    async def refresh(self, token: TokenRecordT) -> TokenRecordT:
        """
        Raises:
            RefreshTokenExpired: Provider reports the refresh token as invalid
            TransientProviderError: Retryable failure
        """
        ...

    async def revoke(self, token: TokenRecordT) -> None:
        """Best effort; never raises."""
        ...

    def build_client(self, token: TokenRecordT) -> IProviderClient:
        ...


ProviderAdapters = Dict[Provider, IProviderAdapter]
