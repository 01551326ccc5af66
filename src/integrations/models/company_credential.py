from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from ..utils.time import now_db_utc


class CompanyCredential(Base):
    """Per-company accounting connection state; token blobs are ciphertext."""

    __tablename__ = "company_credentials"

    company_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    connection_type: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        comment="Most recently connected provider (qbo | xero)",
    )
    qbo_token_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    qbo_realm_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    xero_token_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    xero_tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_db_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=now_db_utc,
        onupdate=now_db_utc,
        nullable=False,
    )
