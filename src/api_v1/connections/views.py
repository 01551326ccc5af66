"""Connection status and lifecycle endpoints for company accounting integrations."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, Query

from integrations.constants.providers import Provider
from integrations.container import Container, get_container
from integrations.schemas.connection import (
    ApiCallRecord,
    CompanyConnection,
    ConnectionHealthRecord,
    TokenStatusResult,
)
from .schemas import ClientReadyResponse, DisconnectResponse, ReauthStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connections"])


@router.get("/{company_id}", response_model=List[CompanyConnection])
async def list_connections(
    company_id: str,
    container: Container = Depends(get_container),
):
    return await container.token_manager().get_company_connections(company_id)


@router.get("/{company_id}/health", response_model=List[ConnectionHealthRecord])
async def connection_health(
    company_id: str,
    container: Container = Depends(get_container),
):
    return await container.audit_service().get_connection_health(company_id)


@router.get("/{company_id}/api-calls", response_model=List[ApiCallRecord])
async def recent_api_calls(
    company_id: str,
    limit: int = Query(50, ge=1, le=500),
    container: Container = Depends(get_container),
):
    return await container.audit_service().get_recent_api_calls(company_id, limit=limit)


@router.get("/{company_id}/{provider}/status", response_model=TokenStatusResult)
async def token_status(
    company_id: str,
    provider: Provider,
    container: Container = Depends(get_container),
):
    return await container.token_manager().get_token_status(company_id, provider)


@router.get("/{company_id}/{provider}/reauth", response_model=ReauthStatusResponse)
async def reauth_status(
    company_id: str,
    provider: Provider,
    container: Container = Depends(get_container),
):
    token_manager = container.token_manager()
    required = await token_manager.check_reauth_required(company_id, provider)
    return ReauthStatusResponse(
        provider=provider,
        reauth_required=required,
        auth_url=token_manager.get_authorization_url(provider) if required else None,
    )


@router.get("/{company_id}/{provider}/client", response_model=ClientReadyResponse)
async def client_ready(
    company_id: str,
    provider: Provider,
    container: Container = Depends(get_container),
):
    """
    Confirm a ready-to-use provider client can be built, refreshing if needed.

    ReauthRequired and TransientProviderError are mapped to 401 and 503 by the
    application exception handlers.
    """
    client = await container.token_manager().get_client(company_id, provider)
    async with client:
        return ClientReadyResponse(
            provider=provider,
            account_id=client.account_id,
            base_url=client.base_url,
        )


@router.delete("/{company_id}/{provider}", response_model=DisconnectResponse)
async def disconnect(
    company_id: str,
    provider: Provider,
    container: Container = Depends(get_container),
):
    await container.token_manager().disconnect(company_id, provider)
    logger.info("Connection removed via API | company_id=%s | provider=%s", company_id, provider.value)
    return DisconnectResponse(provider=provider)
