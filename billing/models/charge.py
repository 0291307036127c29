from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing.db.base import Base
from billing.models.enums import ChargeStatus


class Charge(Base):
    """
    A billing line item for one staff member inside a billing period.

    amount is what was entered (or computed by the calculator); the amount that
    lands on payroll is amount * proration_factor. Calculator charges keep the
    factor at 1 and carry the calculation in metadata_json, generated rent
    charges store the monthly rent with the period overlap factor.
    """

    __tablename__ = "charges"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    billing_period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("billing_periods.id", ondelete="CASCADE"),
        nullable=False,
    )
    staff_id: Mapped[str] = mapped_column(String(64), nullable=False)

    charge_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    proration_factor: Mapped[Decimal] = mapped_column(
        Numeric(8, 6), nullable=False, default=Decimal("1")
    )

    # optional link to the record that produced the charge (occupancy, trip, ...)
    source_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    source_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ChargeStatus.pending.value
    )

    charge_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    billing_period = relationship("BillingPeriod", back_populates="charges")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_charge_amount_nonneg"),
        CheckConstraint(
            "proration_factor >= 0 AND proration_factor <= 1",
            name="ck_charge_proration_factor_range",
        ),
        CheckConstraint(
            "charge_type IN ('rent', 'utilities', 'transport', 'other')",
            name="ck_charge_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'disputed', 'cancelled', 'processed')",
            name="ck_charge_status",
        ),
        CheckConstraint(
            "due_date IS NULL OR due_date >= charge_date",
            name="ck_charge_due_after_charge_date",
        ),
        CheckConstraint(
            "(processed_at IS NULL AND processed_by IS NULL) OR "
            "(processed_at IS NOT NULL AND processed_by IS NOT NULL)",
            name="ck_charge_processed_fields",
        ),
        Index("ix_charges_staff_period", "staff_id", "billing_period_id"),
        Index("ix_charges_period_status", "billing_period_id", "status"),
        Index("ix_charges_type", "charge_type"),
        Index("ix_charges_charge_date", "charge_date"),
        Index("ix_charges_source", "source_id", "source_type"),
    )

    @property
    def adjusted_amount(self) -> Decimal:
        return Decimal(self.amount) * Decimal(self.proration_factor)
