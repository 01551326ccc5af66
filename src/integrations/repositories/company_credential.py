"""Repository for per-company accounting credentials."""

from __future__ import annotations

from typing import Optional, Sequence, TypedDict

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from ..constants.providers import Provider
from ..models.company_credential import CompanyCredential


class CredentialFields(TypedDict, total=False):
    """Columns a credential update may replace. Each present key is written as a whole."""

    company_name: Optional[str]
    connection_type: Optional[str]
    qbo_token_data: Optional[str]
    qbo_realm_id: Optional[str]
    xero_token_data: Optional[str]
    xero_tenant_id: Optional[str]


def _qbo_token_fields(blob: Optional[str], account_id: Optional[str]) -> CredentialFields:
    return CredentialFields(qbo_token_data=blob, qbo_realm_id=account_id)


def _xero_token_fields(blob: Optional[str], account_id: Optional[str]) -> CredentialFields:
    return CredentialFields(xero_token_data=blob, xero_tenant_id=account_id)


_TOKEN_FIELD_BUILDERS = {
    Provider.QBO: _qbo_token_fields,
    Provider.XERO: _xero_token_fields,
}


def token_fields(provider: Provider, blob: Optional[str], account_id: Optional[str]) -> CredentialFields:
    """Fields replacing one provider's token blob and account id."""
    return _TOKEN_FIELD_BUILDERS[provider](blob, account_id)


def stored_blob(credential: CompanyCredential, provider: Provider) -> Optional[str]:
    if provider is Provider.QBO:
        return credential.qbo_token_data
    return credential.xero_token_data


def stored_account_id(credential: CompanyCredential, provider: Provider) -> Optional[str]:
    if provider is Provider.QBO:
        return credential.qbo_realm_id
    return credential.xero_tenant_id


class CompanyCredentialRepository(BaseRepository[CompanyCredential]):
    """Data access layer for company credentials."""

    def __init__(self, session: AsyncSession):
        super().__init__(CompanyCredential, session)

    async def get_by_company_id(self, company_id: str) -> Optional[CompanyCredential]:
        return await self.find_one(CompanyCredential.company_id == company_id)

    async def get_by_account_id(self, provider: Provider, account_id: str) -> Optional[CompanyCredential]:
        column = CompanyCredential.qbo_realm_id if provider is Provider.QBO else CompanyCredential.xero_tenant_id
        return await self.find_one(column == account_id)

    async def list_connected(self, provider: Optional[Provider] = None) -> Sequence[CompanyCredential]:
        """Credentials holding at least one token blob (or one for ``provider``)."""
        if provider is Provider.QBO:
            condition = CompanyCredential.qbo_token_data.is_not(None)
        elif provider is Provider.XERO:
            condition = CompanyCredential.xero_token_data.is_not(None)
        else:
            condition = or_(
                CompanyCredential.qbo_token_data.is_not(None),
                CompanyCredential.xero_token_data.is_not(None),
            )
        return await self.fetch_all(select(CompanyCredential).where(condition).order_by(CompanyCredential.id))

    async def upsert(self, company_id: str, fields: CredentialFields) -> CompanyCredential:
        """Replace the given fields, creating the row on first connect."""
        record = await self.get_by_company_id(company_id)
        if record is None:
            return await self.create(CompanyCredential(company_id=company_id, **fields))
        return await self.apply(record, fields)

    async def update(self, company_id: str, fields: CredentialFields) -> Optional[CompanyCredential]:
        """Replace the given fields on an existing row; missing rows are left alone."""
        record = await self.get_by_company_id(company_id)
        if record is None:
            return None
        return await self.apply(record, fields)
