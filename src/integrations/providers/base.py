"""Shared HTTP plumbing for accounting provider adapters."""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any, Callable, Dict, Mapping, Optional, Type

import httpx

from ..constants.providers import Provider
from ..errors import (
    IntegrationError,
    OAuthExchangeError,
    RefreshTokenExpired,
    TransientProviderError,
)
from ..utils.oauth_state import generate_state
from ..utils.time import now_millis

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Accept": "application/json"}

# OAuth error codes meaning the refresh token itself is dead.
REFRESH_REJECTED_CODES = frozenset({"invalid_grant"})


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def parse_callback_params(
    callback_url: str,
    extra_params: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Flatten the callback query string, letting ``extra_params`` override it."""
    try:
        query = urllib.parse.urlsplit(callback_url).query
    except (AttributeError, ValueError) as exc:
        raise OAuthExchangeError("Malformed OAuth callback URL") from exc
    params = {key: value for key, value in urllib.parse.parse_qsl(query)}
    if extra_params:
        params.update({key: value for key, value in extra_params.items() if value is not None})
    if params.get("error"):
        raise OAuthExchangeError(f"Provider denied authorization: {params['error']}")
    if not params.get("code"):
        raise OAuthExchangeError("OAuth callback is missing the authorization code")
    return params


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("error")
    return None


class ProviderClient:
    """
    Provider API handle pre-loaded with bearer auth and account routing.

    Network failures, 429 and 5xx responses raise TransientProviderError;
    every other response is returned to the caller untouched.
    """

    def __init__(
        self,
        *,
        provider: Provider,
        base_url: str,
        access_token: str,
        account_id: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, str]] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = provider
        self.account_id = account_id
        self.base_url = base_url
        default_headers = {
            **JSON_HEADERS,
            "Authorization": f"Bearer {access_token}",
            **(headers or {}),
        }
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=default_headers,
            params=params,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientProviderError(
                f"{self.provider.value} API request timed out", provider=self.provider
            ) from exc
        except httpx.HTTPError as exc:
            raise TransientProviderError(
                f"{self.provider.value} API request failed: {exc.__class__.__name__}", provider=self.provider
            ) from exc

        if is_transient_status(response.status_code):
            raise TransientProviderError(
                f"{self.provider.value} API returned {response.status_code}",
                provider=self.provider,
                status_code=response.status_code,
            )
        return response

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"ProviderClient(provider={self.provider.value!r}, account_id={self.account_id!r})"


class BaseProviderAdapter:
    """Token endpoint, revocation and authorization URL handling common to OAuth2 providers."""

    provider: Provider
    authorize_url: str
    token_url: str
    revoke_url: str
    userinfo_url: str

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: list[str],
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], int] = now_millis,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._clock = clock

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds), transport=self._transport)

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._http() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Provider request timed out | provider=%s | url=%s", self.provider.value, url)
            raise TransientProviderError(
                f"{self.provider.value} request timed out", provider=self.provider
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Provider request failed | provider=%s | url=%s | error=%s",
                self.provider.value,
                url,
                exc.__class__.__name__,
            )
            raise TransientProviderError(
                f"{self.provider.value} request failed: {exc.__class__.__name__}", provider=self.provider
            ) from exc

    async def _token_request(
        self,
        data: Dict[str, str],
        *,
        rejected: Type[IntegrationError],
        rejected_codes: Optional[frozenset[str]] = None,
    ) -> Dict[str, Any]:
        """
        POST to the token endpoint.

        A 4xx answer raises ``rejected``. When ``rejected_codes`` is given, only
        those OAuth error codes do; any other 4xx is treated as transient.
        """
        response = await self._send(
            "POST",
            self.token_url,
            data=data,
            auth=(self.client_id, self.client_secret),
            headers=JSON_HEADERS,
        )

        if is_transient_status(response.status_code):
            raise TransientProviderError(
                f"{self.provider.value} token endpoint returned {response.status_code}",
                provider=self.provider,
                status_code=response.status_code,
            )
        if response.status_code != 200:
            error = _error_code(response) or f"http_{response.status_code}"
            logger.warning(
                "Token endpoint rejected request | provider=%s | grant_type=%s | status=%s | error=%s",
                self.provider.value,
                data.get("grant_type"),
                response.status_code,
                error,
            )
            if rejected_codes is not None and error not in rejected_codes:
                raise TransientProviderError(
                    f"{self.provider.value} token endpoint returned {response.status_code} ({error})",
                    provider=self.provider,
                    status_code=response.status_code,
                )
            raise rejected(f"{self.provider.value} token endpoint rejected {data.get('grant_type')}: {error}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransientProviderError(
                f"{self.provider.value} token endpoint returned a non-JSON body", provider=self.provider
            ) from exc
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise rejected(f"{self.provider.value} token response is missing access_token")
        return payload

    async def _get_json(self, url: str, access_token: str, headers: Optional[Mapping[str, str]] = None) -> tuple[int, Any]:
        response = await self._send(
            "GET",
            url,
            headers={**JSON_HEADERS, "Authorization": f"Bearer {access_token}", **(headers or {})},
        )
        if is_transient_status(response.status_code):
            raise TransientProviderError(
                f"{self.provider.value} returned {response.status_code} for {url}",
                provider=self.provider,
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError:
            body = None
        return response.status_code, body

    def build_authorization_url(self, remember_me: bool = False) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "redirect_uri": self.redirect_uri,
            "state": generate_state(remember_me),
        }
        return f"{self.authorize_url}?{urllib.parse.urlencode(params, quote_via=urllib.parse.quote)}"

    async def _exchange_code(self, code: str) -> Dict[str, Any]:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            rejected=OAuthExchangeError,
        )

    async def _refresh_grant(self, refresh_token: Optional[str]) -> Dict[str, Any]:
        if not refresh_token:
            raise RefreshTokenExpired(f"{self.provider.value} token has no refresh token")
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            rejected=RefreshTokenExpired,
            rejected_codes=REFRESH_REJECTED_CODES,
        )

    async def _revoke(self, **body: Any) -> None:
        """Best effort: local state is cleared regardless of the outcome."""
        try:
            response = await self._send(
                "POST",
                self.revoke_url,
                **body,
                auth=(self.client_id, self.client_secret),
                headers=JSON_HEADERS,
            )
        except TransientProviderError as exc:
            logger.warning("Token revocation failed | provider=%s | error=%s", self.provider.value, exc)
            return
        if response.status_code >= 400:
            logger.warning(
                "Token revocation rejected | provider=%s | status=%s",
                self.provider.value,
                response.status_code,
            )
            return
        logger.info("Token revoked | provider=%s", self.provider.value)
