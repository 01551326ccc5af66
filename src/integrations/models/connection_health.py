from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from ..utils.time import now_db_utc


class ConnectionHealth(Base):
    __tablename__ = "connection_health"

    company_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    connection_type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    last_checked: Mapped[datetime] = mapped_column(DateTime, default=now_db_utc, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "connection_type", name="uq_connection_health_company_type"),
    )
