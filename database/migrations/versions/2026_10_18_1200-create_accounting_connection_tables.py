"""create accounting connection tables

Revision ID: create_accounting_connection_tables
Revises:
Create Date: 2026-10-18 12:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "create_accounting_connection_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "company_credentials",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("company_id", sa.String(length=64), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column(
            "connection_type",
            sa.String(length=16),
            nullable=True,
            comment="Most recently connected provider (qbo | xero)",
        ),
        sa.Column("qbo_token_data", sa.Text(), nullable=True),
        sa.Column("qbo_realm_id", sa.String(length=64), nullable=True),
        sa.Column("xero_token_data", sa.Text(), nullable=True),
        sa.Column("xero_tenant_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_company_credentials_company_id", "company_credentials", ["company_id"], unique=True)
    op.create_index("ix_company_credentials_qbo_realm_id", "company_credentials", ["qbo_realm_id"])
    op.create_index("ix_company_credentials_xero_tenant_id", "company_credentials", ["xero_tenant_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("company_id", sa.String(length=64), nullable=False),
        sa.Column("api_endpoint", sa.String(length=255), nullable=False),
        sa.Column("connection_type", sa.String(length=16), nullable=False),
        sa.Column("request_method", sa.String(length=16), nullable=False),
        sa.Column("response_status", sa.Integer(), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("user_agent", sa.String(length=512), nullable=False, server_default=""),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("response_time", sa.Integer(), nullable=True, comment="Milliseconds"),
        sa.Column("timestamp", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_company_timestamp", "audit_logs", ["company_id", "timestamp"])

    op.create_table(
        "connection_health",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("company_id", sa.String(length=64), nullable=False),
        sa.Column("connection_type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("last_checked", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.UniqueConstraint("company_id", "connection_type", name="uq_connection_health_company_type"),
    )
    op.create_index("ix_connection_health_company_id", "connection_health", ["company_id"])


def downgrade() -> None:
    op.drop_index("ix_connection_health_company_id", table_name="connection_health")
    op.drop_table("connection_health")
    op.drop_index("ix_audit_logs_company_timestamp", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_company_credentials_xero_tenant_id", table_name="company_credentials")
    op.drop_index("ix_company_credentials_qbo_realm_id", table_name="company_credentials")
    op.drop_index("ix_company_credentials_company_id", table_name="company_credentials")
    op.drop_table("company_credentials")
