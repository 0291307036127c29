from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from billing.schemas.primitives import ApiModel


class TypeTotalsOut(ApiModel):
    count: int
    amount: Decimal
    percentage: Decimal


class BillingSummaryOut(ApiModel):
    total_billing_periods: int
    active_billing_periods: int
    total_charges: int
    total_amount: Decimal
    average_charge_amount: Decimal
    charges_by_type: Dict[str, TypeTotalsOut]


class StaffSummaryOut(ApiModel):
    staff_id: str
    total_charges: int
    total_amount: Decimal
    by_type: Dict[str, Decimal]
    last_billing_date: Optional[datetime] = None
    average_monthly_amount: Decimal
