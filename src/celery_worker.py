"""
Celery entry point: celery -A celery_worker worker -Q tokens_queue --beat
"""

import logging

from integrations.celery_app import celery_app
from integrations.logging_config import configure_logging
import integrations.tasks.token_tasks  # noqa: F401  registers the refresh tasks

app = celery_app

# worker_hijack_root_logger is off, so the worker relies on this
configure_logging()
logging.getLogger(__name__).info(
    "Token refresh worker ready | tasks=%s",
    sorted(name for name in celery_app.tasks if name.startswith("integrations.")),
)
