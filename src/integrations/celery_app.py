from datetime import timedelta

from celery import Celery
from celery.signals import before_task_publish, task_prerun, worker_process_shutdown

from .config import settings
from .logging_config import trace_id_ctx
from .utils.task_helpers import close_worker_loop

TOKENS_QUEUE = "tokens_queue"
TOKEN_TASKS = "integrations.tasks.token_tasks"

celery_app = Celery(
    "accounting_connections",
    broker=settings.celery.broker_url,
    backend=settings.celery.result_backend,
    include=[TOKEN_TASKS],
)

celery_app.conf.update(
    # Redis may fail over; keep reconnecting instead of dying
    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
    broker_connection_max_retries=30,
    broker_transport_options={"visibility_timeout": 3600, "retry_on_timeout": True, "max_connections": 10},
    result_backend_transport_options={"retry_on_timeout": True, "max_connections": 10},
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=timedelta(hours=6),
    timezone="UTC",
    enable_utc=True,
    # Logging is configured in celery_worker.py
    worker_hijack_root_logger=False,
    worker_redirect_stdouts=True,
    worker_redirect_stdouts_level="WARNING",
    worker_log_color=False,
    task_routes={
        f"{TOKEN_TASKS}.refresh_expiring_connections_task": {"queue": TOKENS_QUEUE},
        f"{TOKEN_TASKS}.refresh_connection_task": {"queue": TOKENS_QUEUE},
    },
    # A sweep must finish well inside one refresh interval
    task_soft_time_limit=max(settings.tokens.refresh_interval_seconds // 2, 30),
    task_time_limit=settings.tokens.refresh_interval_seconds,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=200,
    worker_cancel_long_running_tasks_on_connection_loss=True,
)

celery_app.conf.beat_schedule = {
    "refresh-expiring-connections": {
        "task": f"{TOKEN_TASKS}.refresh_expiring_connections_task",
        "schedule": timedelta(seconds=settings.tokens.refresh_interval_seconds),
        "options": {"queue": TOKENS_QUEUE, "expires": settings.tokens.refresh_interval_seconds},
    },
}


# Propagate trace_id via Celery headers
@before_task_publish.connect
def add_trace_id_on_publish(headers=None, body=None, **kwargs):
    trace_id = trace_id_ctx.get()
    if trace_id and headers is not None:
        headers.setdefault("trace_id", trace_id)


@task_prerun.connect
def bind_trace_id_on_worker(task_id=None, task=None, **kwargs):
    request = getattr(task, "request", None)
    headers = getattr(request, "headers", None) or {}
    tid = headers.get("trace_id") if isinstance(headers, dict) else None
    if tid:
        trace_id_ctx.set(tid)


@worker_process_shutdown.connect
def close_loop_on_shutdown(**kwargs):
    close_worker_loop()
