"""billing periods, charges, audit log and idempotency keys

Revision ID: 0001_billing_core
Revises:
Create Date: 2026-10-17
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_billing_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "billing_periods",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("payroll_export_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("end_date > start_date", name="ck_billing_period_end_after_start"),
        sa.CheckConstraint(
            "status IN ('draft', 'processing', 'completed', 'exported', 'cancelled')",
            name="ck_billing_period_status",
        ),
    )
    op.create_index("ix_billing_periods_dates", "billing_periods", ["start_date", "end_date"])
    op.create_index("ix_billing_periods_status", "billing_periods", ["status"])

    op.create_table(
        "charges",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column(
            "billing_period_id",
            sa.Uuid(),
            sa.ForeignKey("billing_periods.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("staff_id", sa.String(length=64), nullable=False),
        sa.Column("charge_type", sa.String(length=20), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("proration_factor", sa.Numeric(8, 6), nullable=False, server_default=sa.text("1")),
        sa.Column("source_id", sa.String(length=64), nullable=True),
        sa.Column("source_type", sa.String(length=50), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("charge_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_by", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount >= 0", name="ck_charge_amount_nonneg"),
        sa.CheckConstraint(
            "proration_factor >= 0 AND proration_factor <= 1",
            name="ck_charge_proration_factor_range",
        ),
        sa.CheckConstraint(
            "charge_type IN ('rent', 'utilities', 'transport', 'other')",
            name="ck_charge_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'disputed', 'cancelled', 'processed')",
            name="ck_charge_status",
        ),
        sa.CheckConstraint(
            "due_date IS NULL OR due_date >= charge_date",
            name="ck_charge_due_after_charge_date",
        ),
        sa.CheckConstraint(
            "(processed_at IS NULL AND processed_by IS NULL) OR "
            "(processed_at IS NOT NULL AND processed_by IS NOT NULL)",
            name="ck_charge_processed_fields",
        ),
    )
    op.create_index("ix_charges_staff_period", "charges", ["staff_id", "billing_period_id"])
    op.create_index("ix_charges_period_status", "charges", ["billing_period_id", "status"])
    op.create_index("ix_charges_type", "charges", ["charge_type"])
    op.create_index("ix_charges_charge_date", "charges", ["charge_date"])
    op.create_index("ix_charges_source", "charges", ["source_id", "source_type"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("action", sa.String(length=96), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("actor_id", sa.String(length=128), nullable=True),
        sa.Column("request_id", sa.String(length=128), nullable=True),
        sa.Column("payload_hash", sa.String(length=128), nullable=False),
        sa.Column("details_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("ix_audit_action", "audit_logs", ["action"])
    op.create_index("ix_audit_created_at", "audit_logs", ["created_at"])

    op.create_table(
        "idempotency_key_records",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("actor_id", sa.String(length=128), nullable=False),
        sa.Column("endpoint_key", sa.String(length=128), nullable=False),
        sa.Column("idem_key", sa.String(length=128), nullable=False),
        sa.Column("request_hash", sa.String(length=128), nullable=False),
        sa.Column("response_status", sa.String(length=16), nullable=False, server_default=sa.text("'200'")),
        sa.Column("response_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("actor_id", "endpoint_key", "idem_key", name="uq_idem_scope"),
    )
    op.create_index("ix_idem_lookup", "idempotency_key_records", ["actor_id", "endpoint_key"])


def downgrade():
    op.drop_index("ix_idem_lookup", table_name="idempotency_key_records")
    op.drop_table("idempotency_key_records")

    op.drop_index("ix_audit_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_action", table_name="audit_logs")
    op.drop_index("ix_audit_entity", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_charges_source", table_name="charges")
    op.drop_index("ix_charges_charge_date", table_name="charges")
    op.drop_index("ix_charges_type", table_name="charges")
    op.drop_index("ix_charges_period_status", table_name="charges")
    op.drop_index("ix_charges_staff_period", table_name="charges")
    op.drop_table("charges")

    op.drop_index("ix_billing_periods_status", table_name="billing_periods")
    op.drop_index("ix_billing_periods_dates", table_name="billing_periods")
    op.drop_table("billing_periods")
