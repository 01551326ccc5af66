"""
Token lifecycle manager for accounting provider connections.

Per (company, provider) the connection moves through
``NoToken -> Valid -> Expiring -> Refreshing -> Valid | ReauthRequired``.
Callers ask for a valid token or a ready client and only ever see
ReauthRequired or TransientProviderError; every other failure is
reclassified here.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Dict, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .audit_service import AuditService
from .token_cipher import TokenCipher
from .token_validator import is_token_valid
from ..constants.providers import (
    DEFAULT_REFRESH_BUFFER_MS,
    HealthStatus,
    Provider,
    TokenStatus,
    parse_provider,
)
from ..errors import (
    DecryptionError,
    OAuthExchangeError,
    ProviderInfoUnavailable,
    ReauthRequired,
    RefreshTokenExpired,
    TransientProviderError,
)
from ..interfaces.providers import IProviderAdapter, IProviderClient, TokenRecordT
from ..models.company_credential import CompanyCredential
from ..providers.base import parse_callback_params
from ..repositories.company_credential import (
    CompanyCredentialRepository,
    stored_account_id,
    stored_blob,
    token_fields,
)
from ..schemas.connection import (
    ApiCallLog,
    AuthorizationResult,
    CompanyConnection,
    RefreshSummary,
    TokenStatusResult,
)
from ..schemas.token import TokenParseError, parse_token_record
from ..utils.oauth_state import is_remember_me
from ..utils.time import millis_to_iso, now_millis

logger = logging.getLogger(__name__)

# Adapter failures that mean the stored grant is unusable.
REAUTH_ERRORS = (RefreshTokenExpired, ReauthRequired, OAuthExchangeError, ProviderInfoUnavailable, DecryptionError)

REFRESH_AUDIT_ENDPOINT = "token_refresh_automatic"
REFRESH_FAILED_AUDIT_ENDPOINT = "token_refresh_failed"


class TokenManager:
    """
    Long-lived per-process manager; owns the in-flight refresh registry.

    The registry maps ``company_id:provider`` to the single refresh task for
    that key. Entries are removed by a done-callback whatever the outcome,
    and waiters are shielded so an abandoned request never cancels a refresh
    other callers still depend on. Refreshes and disconnects of one key
    run under a shared per-key lock. Decrypted tokens are never cached.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        credential_repository_factory: Callable[..., CompanyCredentialRepository],
        adapters: Mapping[Provider, IProviderAdapter],
        cipher: TokenCipher,
        audit_service: AuditService,
        refresh_buffer_ms: int = DEFAULT_REFRESH_BUFFER_MS,
        clock: Callable[[], int] = now_millis,
    ):
        self.session_factory = session_factory
        self.credential_repository_factory = credential_repository_factory
        self.adapters = dict(adapters)
        self.cipher = cipher
        self.audit_service = audit_service
        self.refresh_buffer_ms = refresh_buffer_ms
        self._clock = clock
        self._refreshes: Dict[str, asyncio.Task] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _key(company_id: str, provider: Provider) -> str:
        return f"{company_id}:{provider.value}"

    def _lock(self, key: str) -> asyncio.Lock:
        """Per-connection lock; refreshes and disconnects on one key never overlap."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _adapter(self, provider: Provider) -> IProviderAdapter:
        return self.adapters[provider]

    def refresh_in_flight(self, company_id: str, provider: Provider | str) -> bool:
        return self._key(company_id, parse_provider(provider)) in self._refreshes

    async def _load_credential(self, company_id: str) -> Optional[CompanyCredential]:
        async with self.session_factory() as session:
            repo = self.credential_repository_factory(session=session)
            return await repo.get_by_company_id(company_id)

    def _decode(self, company_id: str, provider: Provider, blob: str) -> TokenRecordT:
        try:
            return parse_token_record(self.cipher.open(blob), provider)
        except (DecryptionError, TokenParseError) as exc:
            logger.warning(
                "Stored token unreadable | company_id=%s | provider=%s | error=%s",
                company_id,
                provider.value,
                exc,
            )
            raise ReauthRequired(provider, company_id, "Stored credential cannot be read") from exc

    async def _load_record(self, company_id: str, provider: Provider) -> TokenRecordT:
        credential = await self._load_credential(company_id)
        blob = stored_blob(credential, provider) if credential else None
        if not blob:
            raise ReauthRequired(provider, company_id, f"No {provider.value} token stored")
        try:
            return self._decode(company_id, provider, blob)
        except ReauthRequired as exc:
            await self.audit_service.update_connection_health(
                company_id, provider, HealthStatus.EXPIRED, exc.reason
            )
            raise

    async def _persist(
        self,
        company_id: str,
        provider: Provider,
        record: TokenRecordT,
        *,
        account_name: Optional[str] = None,
        activate: bool = False,
    ) -> None:
        # Whole-blob replace; never patch fields inside a stored record.
        fields = token_fields(provider, self.cipher.seal(record.to_json()), record.account_id)
        if account_name:
            fields["company_name"] = account_name
        if activate:
            fields["connection_type"] = provider.value
        async with self.session_factory() as session:
            repo = self.credential_repository_factory(session=session)
            await repo.upsert(company_id, fields)
            await session.commit()

    async def _audit_refresh(
        self,
        *,
        user_id: Optional[str],
        company_id: str,
        provider: Provider,
        started_ms: int,
        status: int,
        error_message: Optional[str] = None,
    ) -> None:
        if not user_id:
            return
        await self.audit_service.log_api_call(
            ApiCallLog(
                user_id=user_id,
                company_id=company_id,
                api_endpoint=REFRESH_FAILED_AUDIT_ENDPOINT if error_message else REFRESH_AUDIT_ENDPOINT,
                connection_type=provider,
                request_method="POST",
                response_status=status,
                error_message=error_message,
                response_time=max(self._clock() - started_ms, 0),
            )
        )

    # ------------------------------------------------------------------
    # Refresh coordination
    # ------------------------------------------------------------------

    def _join_or_start_refresh(
        self,
        company_id: str,
        provider: Provider,
        user_id: Optional[str],
    ) -> asyncio.Task:
        # No await between lookup and insert: this is the dedup point.
        key = self._key(company_id, provider)
        task = self._refreshes.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._run_refresh(company_id, provider, user_id),
                name=f"token-refresh:{key}",
            )
            self._refreshes[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        else:
            logger.debug("Joining in-flight refresh | key=%s", key)
        return task

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._refreshes.get(key) is task:
            del self._refreshes[key]
        if not task.cancelled():
            # Mark the outcome retrieved even if every waiter went away.
            task.exception()

    async def _run_refresh(
        self,
        company_id: str,
        provider: Provider,
        user_id: Optional[str],
    ) -> TokenRecordT:
        async with self._lock(self._key(company_id, provider)):
            return await self._refresh_locked(company_id, provider, user_id)

    async def _refresh_locked(
        self,
        company_id: str,
        provider: Provider,
        user_id: Optional[str],
    ) -> TokenRecordT:
        adapter = self._adapter(provider)
        # Re-read: a refresh that finished after the caller loaded the row has
        # already rotated the refresh token the caller holds, and a disconnect
        # may have cleared it.
        record = await self._load_record(company_id, provider)
        if is_token_valid(record, self._clock(), self.refresh_buffer_ms):
            await self.audit_service.update_connection_health(company_id, provider, HealthStatus.HEALTHY)
            return record

        started_ms = self._clock()
        logger.info("Refreshing token | company_id=%s | provider=%s", company_id, provider.value)

        try:
            refreshed = await adapter.refresh(record)
        except REAUTH_ERRORS as exc:
            logger.warning(
                "Refresh token rejected | company_id=%s | provider=%s | error=%s",
                company_id,
                provider.value,
                exc,
            )
            await self.audit_service.update_connection_health(
                company_id, provider, HealthStatus.UNHEALTHY, str(exc)
            )
            await self._audit_refresh(
                user_id=user_id,
                company_id=company_id,
                provider=provider,
                started_ms=started_ms,
                status=401,
                error_message=str(exc),
            )
            raise ReauthRequired(provider, company_id, "Refresh token is no longer valid") from exc
        except TransientProviderError as exc:
            logger.warning(
                "Token refresh failed, retryable | company_id=%s | provider=%s | status=%s | error=%s",
                company_id,
                provider.value,
                exc.status_code,
                exc,
            )
            await self.audit_service.update_connection_health(
                company_id, provider, HealthStatus.UNHEALTHY, str(exc)
            )
            await self._audit_refresh(
                user_id=user_id,
                company_id=company_id,
                provider=provider,
                started_ms=started_ms,
                status=exc.status_code or 503,
                error_message=str(exc),
            )
            raise
        except Exception as exc:
            logger.exception(
                "Unexpected token refresh failure | company_id=%s | provider=%s",
                company_id,
                provider.value,
            )
            await self.audit_service.update_connection_health(
                company_id, provider, HealthStatus.UNHEALTHY, exc.__class__.__name__
            )
            await self._audit_refresh(
                user_id=user_id,
                company_id=company_id,
                provider=provider,
                started_ms=started_ms,
                status=500,
                error_message=exc.__class__.__name__,
            )
            raise TransientProviderError(
                f"{provider.value} token refresh failed", provider=provider
            ) from exc

        await self._persist(company_id, provider, refreshed)
        await self.audit_service.update_connection_health(company_id, provider, HealthStatus.HEALTHY)
        await self._audit_refresh(
            user_id=user_id,
            company_id=company_id,
            provider=provider,
            started_ms=started_ms,
            status=200,
        )
        logger.info(
            "Token refreshed | company_id=%s | provider=%s | expires_at=%s",
            company_id,
            provider.value,
            refreshed.expires_at_millis(),
        )
        return refreshed

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def get_valid_token(
        self,
        company_id: str,
        provider: Provider | str,
        user_id: Optional[str] = None,
    ) -> TokenRecordT:
        """
        Return a token usable for at least the refresh buffer.

        Raises:
            ReauthRequired: No token, unreadable token, or dead refresh token
            TransientProviderError: Refresh failed for a retryable reason
        """
        provider = parse_provider(provider)
        in_flight = self._refreshes.get(self._key(company_id, provider))
        if in_flight is not None:
            return await asyncio.shield(in_flight)

        record = await self._load_record(company_id, provider)
        if is_token_valid(record, self._clock(), self.refresh_buffer_ms):
            await self.audit_service.update_connection_health(company_id, provider, HealthStatus.HEALTHY)
            return record

        task = self._join_or_start_refresh(company_id, provider, user_id)
        return await asyncio.shield(task)

    async def get_client(self, company_id: str, provider: Provider | str) -> IProviderClient:
        provider = parse_provider(provider)
        record = await self.get_valid_token(company_id, provider)
        return self._adapter(provider).build_client(record)

    async def get_token_status(self, company_id: str, provider: Provider | str) -> TokenStatusResult:
        """Read-only projection of the connection state; never refreshes."""
        provider = parse_provider(provider)
        credential = await self._load_credential(company_id)
        blob = stored_blob(credential, provider) if credential else None

        account_id = stored_account_id(credential, provider) if credential else None
        ids = {"realm_id": account_id} if provider is Provider.QBO else {"tenant_id": account_id}

        if not blob:
            return TokenStatusResult(
                status=TokenStatus.NO_TOKEN,
                message=f"No {provider.value} token found",
                connection_type=provider,
                **ids,
            )
        try:
            record = self._decode(company_id, provider, blob)
        except ReauthRequired:
            return TokenStatusResult(
                status=TokenStatus.ERROR,
                message=f"Stored {provider.value} token cannot be read",
                connection_type=provider,
                **ids,
            )
        expires_at = millis_to_iso(record.expires_at_millis())
        if is_token_valid(record, self._clock(), self.refresh_buffer_ms):
            return TokenStatusResult(
                status=TokenStatus.VALID,
                message=f"{provider.value} token is valid",
                connection_type=provider,
                expires_at=expires_at,
                **ids,
            )
        return TokenStatusResult(
            status=TokenStatus.EXPIRED,
            message=f"{provider.value} token has expired",
            connection_type=provider,
            expires_at=expires_at,
            **ids,
        )

    async def check_reauth_required(self, company_id: str, provider: Provider | str) -> bool:
        """
        True only when the user has to go through consent again.

        An expired access token is refreshed on the way; a transient provider
        failure does not mean the grant is gone.
        """
        try:
            await self.get_valid_token(company_id, provider)
        except ReauthRequired:
            return True
        except TransientProviderError as exc:
            logger.warning(
                "Reauth check inconclusive, provider unavailable | company_id=%s | provider=%s | error=%s",
                company_id,
                getattr(provider, "value", provider),
                exc,
            )
        return False

    async def get_company_connections(self, company_id: str) -> List[CompanyConnection]:
        credential = await self._load_credential(company_id)
        if credential is None:
            return []

        connections: List[CompanyConnection] = []
        for provider in Provider:
            if not stored_blob(credential, provider):
                continue
            account_id = stored_account_id(credential, provider)
            connections.append(
                CompanyConnection(
                    type=provider,
                    realm_id=account_id if provider is Provider.QBO else None,
                    tenant_id=account_id if provider is Provider.XERO else None,
                    is_active=credential.connection_type == provider.value,
                    status=await self.get_token_status(company_id, provider),
                )
            )
        return connections

    async def store_token_data(
        self,
        company_id: str,
        provider: Provider | str,
        record: TokenRecordT,
        account_name: Optional[str] = None,
    ) -> None:
        """First-connect write: stores the blob and marks the provider active."""
        provider = parse_provider(provider)
        await self._persist(company_id, provider, record, account_name=account_name, activate=True)
        await self.audit_service.update_connection_health(company_id, provider, HealthStatus.HEALTHY)
        logger.info(
            "Token stored | company_id=%s | provider=%s | account_id=%s",
            company_id,
            provider.value,
            record.account_id,
        )

    def get_authorization_url(self, provider: Provider | str, remember_me: bool = False) -> str:
        return self._adapter(parse_provider(provider)).build_authorization_url(remember_me)

    async def complete_authorization(
        self,
        provider: Provider | str,
        callback_url: str,
        extra_params: Optional[Mapping[str, str]] = None,
        company_id: Optional[str] = None,
    ) -> AuthorizationResult:
        """
        Exchange the callback code, resolve the owning company and store the token.

        The company is the one given, else the one already linked to the
        provider account, else a new id.

        Raises:
            ReauthRequired: The provider rejected the code or would not
                describe the account; nothing is stored
            TransientProviderError: The provider was unreachable
        """
        provider = parse_provider(provider)
        adapter = self._adapter(provider)

        try:
            record = await adapter.exchange_code_for_token(callback_url, extra_params)
            account_info = await adapter.fetch_account_info(record)
            identity = await adapter.fetch_identity(record)
        except (OAuthExchangeError, ProviderInfoUnavailable) as exc:
            logger.warning(
                "Authorization failed | company_id=%s | provider=%s | error=%s",
                company_id,
                provider.value,
                exc,
            )
            raise ReauthRequired(provider, company_id, "Authorization could not be completed") from exc

        if company_id is None:
            async with self.session_factory() as session:
                repo = self.credential_repository_factory(session=session)
                existing = await repo.get_by_account_id(provider, account_info.provider_account_id)
            company_id = existing.company_id if existing else uuid.uuid4().hex

        await self.store_token_data(company_id, provider, record, account_name=account_info.account_name)

        state = parse_callback_params(callback_url, extra_params).get("state")
        logger.info(
            "Authorization completed | company_id=%s | provider=%s | account_id=%s",
            company_id,
            provider.value,
            account_info.provider_account_id,
        )
        return AuthorizationResult(
            company_id=company_id,
            provider=provider,
            account_info=account_info,
            identity=identity,
            remember_me=is_remember_me(state),
            token_stored=True,
        )

    async def disconnect(self, company_id: str, provider: Provider | str) -> None:
        """Best-effort revoke, then clear local state. Idempotent."""
        provider = parse_provider(provider)
        # A refresh holding the lock lands first; one queued behind it re-reads
        # the cleared row and fails with ReauthRequired.
        async with self._lock(self._key(company_id, provider)):
            await self._disconnect_locked(company_id, provider)

    async def _disconnect_locked(self, company_id: str, provider: Provider) -> None:
        credential = await self._load_credential(company_id)
        if credential is None:
            logger.info("Disconnect skipped, no credential | company_id=%s | provider=%s", company_id, provider.value)
            return

        blob = stored_blob(credential, provider)
        account_id = stored_account_id(credential, provider)
        if not blob and not account_id and credential.connection_type != provider.value:
            logger.info("Disconnect skipped, already clear | company_id=%s | provider=%s", company_id, provider.value)
            return

        if blob:
            try:
                record = self._decode(company_id, provider, blob)
            except ReauthRequired:
                record = None
            if record is not None:
                try:
                    await self._adapter(provider).revoke(record)
                except Exception as exc:
                    logger.warning(
                        "Revoke failed, clearing local state anyway | company_id=%s | provider=%s | error=%s",
                        company_id,
                        provider.value,
                        exc,
                    )

        fields = token_fields(provider, None, None)
        if credential.connection_type == provider.value:
            remaining = [other for other in Provider if other is not provider and stored_blob(credential, other)]
            fields["connection_type"] = remaining[0].value if remaining else None

        async with self.session_factory() as session:
            repo = self.credential_repository_factory(session=session)
            await repo.update(company_id, fields)
            await session.commit()
        logger.info("Disconnected | company_id=%s | provider=%s", company_id, provider.value)

    async def refresh_expiring_connections(self) -> RefreshSummary:
        """Proactively refresh every stored token that falls inside the buffer."""
        summary = RefreshSummary()
        async with self.session_factory() as session:
            repo = self.credential_repository_factory(session=session)
            credentials = await repo.list_connected()

        now_ms = self._clock()
        for credential in credentials:
            for provider in Provider:
                blob = stored_blob(credential, provider)
                if not blob:
                    continue
                summary.checked += 1
                try:
                    record = self._decode(credential.company_id, provider, blob)
                except ReauthRequired:
                    summary.reauth_required += 1
                    continue
                if is_token_valid(record, now_ms, self.refresh_buffer_ms):
                    continue
                try:
                    await self.get_valid_token(credential.company_id, provider)
                except ReauthRequired:
                    summary.reauth_required += 1
                except TransientProviderError:
                    summary.transient_failures += 1
                else:
                    summary.refreshed += 1

        logger.info(
            "Expiring connections processed | checked=%s | refreshed=%s | reauth_required=%s | transient=%s",
            summary.checked,
            summary.refreshed,
            summary.reauth_required,
            summary.transient_failures,
        )
        return summary
