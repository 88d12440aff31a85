"""create import_tasks and business_records tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "import_tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "owner_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment="Account on whose behalf data is imported",
        ),
        sa.Column(
            "connection_id",
            sa.String(length=255),
            nullable=False,
            comment="Credential store connection identifier for the provider",
        ),
        sa.Column("task_type", sa.String(length=32), nullable=False, comment="merchant, locations, catalog"),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column(
            "progress_message",
            sa.Text(),
            nullable=True,
            comment="Human-readable status message for UI display",
        ),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Imported data, set when the task completes",
        ),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column(
            "next_attempt_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Earliest time a scheduled retry may run; null means due now",
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "owner_id",
            "connection_id",
            "task_type",
            name="uq_import_tasks_owner_connection_type",
        ),
    )
    op.create_index("ix_import_tasks_owner_id", "import_tasks", ["owner_id"], unique=False)
    op.create_index("ix_import_tasks_connection_id", "import_tasks", ["connection_id"], unique=False)
    op.create_index("ix_import_tasks_status", "import_tasks", ["status"], unique=False)
    op.create_index(
        "ix_import_tasks_owner_id_status",
        "import_tasks",
        ["owner_id", "status"],
        unique=False,
    )
    op.create_index("ix_import_tasks_created_at", "import_tasks", ["created_at"], unique=False)

    op.create_table(
        "business_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("merchant_id", sa.String(length=255), nullable=True),
        sa.Column("business_name", sa.String(length=255), nullable=True),
        sa.Column("country", sa.String(length=8), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("language_code", sa.String(length=16), nullable=True),
        sa.Column("primary_location_id", sa.String(length=255), nullable=True),
        sa.Column("location_name", sa.String(length=255), nullable=True),
        sa.Column("phone_number", sa.String(length=64), nullable=True),
        sa.Column("business_city", sa.String(length=255), nullable=True),
        sa.Column("full_address", sa.Text(), nullable=True),
        sa.Column("opening_hours", sa.Text(), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column(
            "catalog_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Categories, services with bookable variations, plain items",
        ),
        sa.Column("service_names", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("last_imported_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_id", name="uq_business_records_owner_id"),
    )


def downgrade() -> None:
    op.drop_table("business_records")
    op.drop_index("ix_import_tasks_created_at", table_name="import_tasks")
    op.drop_index("ix_import_tasks_owner_id_status", table_name="import_tasks")
    op.drop_index("ix_import_tasks_status", table_name="import_tasks")
    op.drop_index("ix_import_tasks_connection_id", table_name="import_tasks")
    op.drop_index("ix_import_tasks_owner_id", table_name="import_tasks")
    op.drop_table("import_tasks")
