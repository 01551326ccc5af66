"""Retry schedule for token refresh tasks that hit a transient provider failure."""

DEFAULT_RETRY_SCHEDULE: tuple[int, ...] = (30, 120, 300, 900)
DEFAULT_MAX_RETRIES: int = len(DEFAULT_RETRY_SCHEDULE)
