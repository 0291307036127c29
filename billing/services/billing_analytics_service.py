from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.models.billing_period import BillingPeriod
from billing.models.charge import Charge
from billing.models.enums import BillingStatus, ChargeType
from billing.services.charge_display import money2

ACTIVE_PERIOD_STATUSES = (BillingStatus.draft.value, BillingStatus.processing.value)


@dataclass
class TypeTotals:
    count: int = 0
    amount: Decimal = Decimal("0")
    percentage: Decimal = Decimal("0")


@dataclass
class BillingSummary:
    total_billing_periods: int
    active_billing_periods: int
    total_charges: int
    total_amount: Decimal
    average_charge_amount: Decimal
    charges_by_type: Dict[ChargeType, TypeTotals]


@dataclass
class StaffSummary:
    staff_id: str
    total_charges: int = 0
    total_amount: Decimal = Decimal("0")
    by_type: Dict[ChargeType, Decimal] = field(
        default_factory=lambda: {t: Decimal("0") for t in ChargeType}
    )
    last_billing_date: Optional[datetime] = None
    average_monthly_amount: Decimal = Decimal("0")


def _range_bounds(date_from: Optional[date], date_to: Optional[date]):
    lo = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    hi = datetime.combine(date_to, time.max, tzinfo=timezone.utc) if date_to else None
    return lo, hi


class BillingAnalyticsService:
    def _charges_in_range(
        self,
        db: Session,
        *,
        staff_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Charge]:
        q = select(Charge)
        if staff_id:
            q = q.where(Charge.staff_id == staff_id)
        lo, hi = _range_bounds(date_from, date_to)
        if lo is not None:
            q = q.where(Charge.created_at >= lo)
        if hi is not None:
            q = q.where(Charge.created_at <= hi)
        return list(db.execute(q).scalars())

    def billing_summary(
        self,
        db: Session,
        *,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> BillingSummary:
        pq = select(BillingPeriod)
        if date_from:
            pq = pq.where(BillingPeriod.start_date >= date_from)
        if date_to:
            pq = pq.where(BillingPeriod.end_date <= date_to)
        periods = list(db.execute(pq).scalars())

        charges = self._charges_in_range(db, date_from=date_from, date_to=date_to)

        by_type: Dict[ChargeType, TypeTotals] = {t: TypeTotals() for t in ChargeType}
        total = Decimal("0")
        for c in charges:
            adjusted = c.adjusted_amount
            totals = by_type[ChargeType(c.charge_type)]
            totals.count += 1
            totals.amount += adjusted
            total += adjusted

        # percentages from the unrounded sums
        for totals in by_type.values():
            totals.percentage = money2(totals.amount / total * 100) if total > 0 else Decimal("0")
            totals.amount = money2(totals.amount)

        average = money2(total / len(charges)) if charges else Decimal("0")

        return BillingSummary(
            total_billing_periods=len(periods),
            active_billing_periods=sum(1 for p in periods if p.status in ACTIVE_PERIOD_STATUSES),
            total_charges=len(charges),
            total_amount=money2(total),
            average_charge_amount=average,
            charges_by_type=by_type,
        )

    def staff_summaries(
        self,
        db: Session,
        *,
        staff_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[StaffSummary]:
        charges = self._charges_in_range(db, staff_id=staff_id, date_from=date_from, date_to=date_to)

        months = 1
        if date_from and date_to:
            months = max(math.ceil((date_to - date_from).days / 30), 1)

        grouped: Dict[str, StaffSummary] = defaultdict(lambda: StaffSummary(staff_id=""))
        for c in charges:
            summary = grouped[c.staff_id]
            summary.staff_id = c.staff_id
            adjusted = c.adjusted_amount
            summary.total_charges += 1
            summary.total_amount += adjusted
            summary.by_type[ChargeType(c.charge_type)] += adjusted
            if summary.last_billing_date is None or c.created_at > summary.last_billing_date:
                summary.last_billing_date = c.created_at

        out = list(grouped.values())
        for s in out:
            s.total_amount = money2(s.total_amount)
            s.by_type = {t: money2(v) for t, v in s.by_type.items()}
            s.average_monthly_amount = money2(s.total_amount / months)
        out.sort(key=lambda s: s.total_amount, reverse=True)
        return out
