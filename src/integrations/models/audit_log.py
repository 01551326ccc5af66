from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from ..utils.time import now_db_utc


class AuditLog(Base):
    """Outcome of a provider API call made on behalf of a company."""

    __tablename__ = "audit_logs"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    api_endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    connection_type: Mapped[str] = mapped_column(String(16), nullable=False)
    request_method: Mapped[str] = mapped_column(String(16), nullable=False)
    response_status: Mapped[int] = mapped_column(Integer, nullable=False)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    user_agent: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="Milliseconds")
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=now_db_utc, nullable=False)

    __table_args__ = (Index("ix_audit_logs_company_timestamp", "company_id", "timestamp"),)
