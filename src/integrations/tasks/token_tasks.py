"""Celery tasks keeping stored provider tokens fresh."""

import logging

from ..celery_app import celery_app
from ..constants.retry_policy import DEFAULT_MAX_RETRIES
from ..container import get_container
from ..errors import ReauthRequired, TransientProviderError
from ..utils.task_helpers import async_task, get_retry_delay

logger = logging.getLogger(__name__)


@celery_app.task
@async_task
async def refresh_expiring_connections_task():
    """Refresh every connection whose access token falls inside the refresh buffer."""
    token_manager = get_container().token_manager()
    summary = await token_manager.refresh_expiring_connections()
    return {"status": "ok", **summary.model_dump()}


@celery_app.task(bind=True, max_retries=DEFAULT_MAX_RETRIES)
@async_task
async def refresh_connection_task(self, company_id: str, provider: str):
    """Refresh one connection on demand, retrying transient provider failures."""
    task_id = self.request.id
    logger.info(
        "Task started: refresh_connection_task | task_id=%s | company_id=%s | provider=%s | retry=%s/%s",
        task_id,
        company_id,
        provider,
        self.request.retries,
        self.max_retries,
    )
    token_manager = get_container().token_manager()

    try:
        record = await token_manager.get_valid_token(company_id, provider)
    except ReauthRequired as exc:
        logger.warning(
            "Task completed: refresh_connection_task | task_id=%s | company_id=%s | provider=%s | status=reauth_required",
            task_id,
            company_id,
            provider,
        )
        return {"status": "reauth_required", "code": exc.code}
    except TransientProviderError as exc:
        if self.request.retries < self.max_retries:
            countdown = get_retry_delay(self.request.retries)
            logger.warning(
                "Task retry scheduled: refresh_connection_task | task_id=%s | company_id=%s | provider=%s | countdown=%ss",
                task_id,
                company_id,
                provider,
                countdown,
            )
            raise self.retry(exc=exc, countdown=countdown)
        logger.error(
            "Task failed: refresh_connection_task | task_id=%s | company_id=%s | provider=%s | error=%s",
            task_id,
            company_id,
            provider,
            exc,
        )
        return {"status": "error", "reason": str(exc)}

    return {"status": "ok", "expires_at": record.expires_at_millis()}
