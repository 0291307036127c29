from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from billing.db.session import get_db
from billing.schemas.analytics import BillingSummaryOut, StaffSummaryOut, TypeTotalsOut
from billing.services.billing_analytics_service import BillingAnalyticsService

router = APIRouter(prefix="/analytics")


def _check_range(date_from: Optional[date], date_to: Optional[date]) -> None:
    if date_from and date_to and date_to < date_from:
        raise HTTPException(status_code=400, detail="dateTo must not be before dateFrom.")


@router.get("/billing", response_model=BillingSummaryOut)
async def billing_summary(
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    db: Session = Depends(get_db),
):
    _check_range(date_from, date_to)
    s = BillingAnalyticsService().billing_summary(db, date_from=date_from, date_to=date_to)
    return BillingSummaryOut(
        total_billing_periods=s.total_billing_periods,
        active_billing_periods=s.active_billing_periods,
        total_charges=s.total_charges,
        total_amount=s.total_amount,
        average_charge_amount=s.average_charge_amount,
        charges_by_type={
            t.value: TypeTotalsOut(count=v.count, amount=v.amount, percentage=v.percentage)
            for t, v in s.charges_by_type.items()
        },
    )


@router.get("/staff", response_model=List[StaffSummaryOut])
async def staff_summaries(
    staff_id: Optional[str] = Query(None, alias="staffId"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    db: Session = Depends(get_db),
):
    _check_range(date_from, date_to)
    rows = BillingAnalyticsService().staff_summaries(
        db, staff_id=staff_id, date_from=date_from, date_to=date_to
    )
    return [
        StaffSummaryOut(
            staff_id=s.staff_id,
            total_charges=s.total_charges,
            total_amount=s.total_amount,
            by_type={t.value: v for t, v in s.by_type.items()},
            last_billing_date=s.last_billing_date,
            average_monthly_amount=s.average_monthly_amount,
        )
        for s in rows
    ]
