import os
import re
import logging
import contextvars
from logging.config import dictConfig


class ChannelAliasFilter(logging.Filter):
    """Adds a friendly channel name to log records.

    Token lifecycle loggers collapse to short "tokens" channels; other
    names pass through unchanged.
    """

    NAME_MAP = {
        "uvicorn.error": "uvicorn",
        "uvicorn.access": "uvicorn.access",
        "celery.app.trace": "celery",
        "integrations.services.token_manager": "tokens",
        "integrations.tasks.token_tasks": "tokens.tasks",
    }

    def filter(self, record: logging.LogRecord) -> bool:
        record.channel = self.NAME_MAP.get(record.name, record.name)
        return True


# Trace context
trace_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar("trace_id", default=None)


class TraceIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = trace_id_ctx.get() or "-"
        return True


REDACTED = "[REDACTED]"

_SECRET_PATTERNS = (
    re.compile(r"(?P<key>[\"']?(?:access_token|refresh_token|id_token|client_secret)[\"']?\s*[:=]\s*[\"']?)[^\"'&\s,}]+", re.IGNORECASE),
    re.compile(r"(?P<key>Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"(?P<key>Basic\s+)[A-Za-z0-9+/]+=*", re.IGNORECASE),
)


def redact_secrets(text: str) -> str:
    """Mask token values and authorization headers in free text."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: f"{m.group('key')}{REDACTED}", text)
    return text


class SecretRedactionFilter(logging.Filter):
    """Strips OAuth secrets from the rendered message before any handler sees it."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            return True
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Third-party channels pinned regardless of LOGS_LEVEL.
# httpx logs full request URLs, which carry authorization codes on callbacks.
_QUIET_LOGGERS = ("celery.pool", "sqlalchemy", "httpx", "httpcore")
_APP_LOGGERS = ("uvicorn", "uvicorn.error", "celery", "celery.app.trace")


def _resolve_log_level(default: str = "INFO") -> str:
    env_level = os.getenv("LOGS_LEVEL", "").strip().upper()
    return env_level if env_level in _LEVELS else default


def _logger_entry(handler: str, level: str) -> dict:
    return {"handlers": [handler], "level": level, "propagate": False}


def build_logging_config(level: str) -> dict:
    """Assemble the dictConfig payload for the given root level.

    The trace id only appears in the line format at DEBUG; it is always
    attached to records so handlers added later can use it.
    """
    line = "%(asctime)s | %(levelname)-8s | %(channel)-24s | "
    loggers = {name: _logger_entry("console", level) for name in _APP_LOGGERS}
    loggers.update({name: _logger_entry("console", "WARNING") for name in _QUIET_LOGGERS})
    loggers["uvicorn.access"] = _logger_entry("access", level)
    loggers[""] = {"handlers": ["console"], "level": level}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "channel": {"()": ChannelAliasFilter},
            "trace": {"()": TraceIdFilter},
            "redact": {"()": SecretRedactionFilter},
        },
        "formatters": {
            "plain": {"format": line + "%(message)s", "datefmt": "%Y-%m-%d %H:%M:%S"},
            "traced": {"format": line + "[%(trace_id)s] | %(message)s", "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "level": level,
                "formatter": "traced" if level == "DEBUG" else "plain",
                "filters": ["channel", "trace", "redact"],
            },
            # Access lines carry callback query strings too
            "access": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "level": "INFO" if level == "DEBUG" else level,
                "formatter": "plain",
                "filters": ["channel", "trace", "redact"],
            },
        },
        "loggers": loggers,
    }


def configure_logging() -> None:
    """Configure stdlib logging for the API process and Celery workers."""
    level = _resolve_log_level()
    dictConfig(build_logging_config(level))
    logging.getLogger(__name__).debug("Logging configured with level %s", level)
