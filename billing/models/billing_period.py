from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Index,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing.db.base import Base
from billing.models.enums import BillingStatus


class BillingPeriod(Base):
    """
    Payroll deduction window. Charges hang off a period and are exported
    with it; once exported a period is frozen.
    """

    __tablename__ = "billing_periods"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BillingStatus.draft.value
    )

    payroll_export_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    charges: Mapped[List["Charge"]] = relationship(
        "Charge",
        back_populates="billing_period",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_billing_period_end_after_start"),
        CheckConstraint(
            "status IN ('draft', 'processing', 'completed', 'exported', 'cancelled')",
            name="ck_billing_period_status",
        ),
        Index("ix_billing_periods_dates", "start_date", "end_date"),
        Index("ix_billing_periods_status", "status"),
    )

    @property
    def is_frozen(self) -> bool:
        return self.status in (BillingStatus.exported.value, BillingStatus.cancelled.value)
