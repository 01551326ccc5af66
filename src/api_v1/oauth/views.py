"""OAuth consent and callback endpoints for accounting providers."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from integrations.constants.providers import Provider
from integrations.container import Container, get_container
from integrations.errors import ReauthRequired
from integrations.utils.oauth_state import InvalidStateError, validate_state
from .schemas import AuthUrlResponse, CallbackResponse, OAuthErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])


@router.get("/{provider}/authorize", response_model=AuthUrlResponse)
async def oauth_authorize(
    provider: Provider,
    remember_me: bool = Query(False, description="Keep the user signed in after the callback"),
    container: Container = Depends(get_container),
) -> AuthUrlResponse:
    """Build the provider consent URL for the frontend to redirect the user to."""
    token_manager = container.token_manager()
    auth_url = token_manager.get_authorization_url(provider, remember_me=remember_me)
    logger.info("Authorization URL issued | provider=%s | remember_me=%s", provider.value, remember_me)
    return AuthUrlResponse(provider=provider, auth_url=auth_url)


@router.get(
    "/{provider}/callback",
    response_model=CallbackResponse,
    responses={400: {"model": OAuthErrorResponse}},
)
async def oauth_callback(
    provider: Provider,
    request: Request,
    code: str = Query(..., description="Authorization code returned by the provider"),
    state: str = Query(..., description="Signed state issued by the authorize endpoint"),
    company_id: Optional[str] = Query(None, description="Link the connection to an existing company"),
    container: Container = Depends(get_container),
) -> CallbackResponse:
    """
    Handle the provider redirect.

    The state is verified before the code is exchanged; the token is then
    stored against the company owning the provider account (or a new one).
    """
    try:
        validate_state(state)
    except InvalidStateError as exc:
        logger.warning("OAuth callback rejected | provider=%s | reason=%s", provider.value, exc)
        raise HTTPException(status_code=400, detail=str(exc))

    token_manager = container.token_manager()
    try:
        result = await token_manager.complete_authorization(
            provider,
            str(request.url),
            company_id=company_id,
        )
    except ReauthRequired as exc:
        logger.warning("OAuth callback failed | provider=%s | error=%s", provider.value, exc)
        raise HTTPException(status_code=400, detail="Authorization could not be completed")

    return CallbackResponse(**result.model_dump())
