from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, model_validator

from billing.models.enums import BillingStatus
from billing.schemas.charges import ChargeOut
from billing.schemas.primitives import ApiModel, Money


class BillingPeriodCreateRequest(ApiModel):
    start_date: date
    end_date: date
    status: BillingStatus = BillingStatus.draft

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class BillingPeriodStatusRequest(ApiModel):
    status: BillingStatus
    export_date: Optional[datetime] = None


class BillingPeriodOut(ApiModel):
    id: uuid.UUID
    start_date: date
    end_date: date
    status: BillingStatus
    payroll_export_date: Optional[datetime] = None
    charge_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OccupancyIn(ApiModel):
    staff_id: str = Field(..., min_length=1)
    start_date: date
    end_date: Optional[date] = None
    monthly_rent: Money
    label: str = Field(..., min_length=1)
    source_id: Optional[str] = None


class RentGenerationRequest(ApiModel):
    occupancies: List[OccupancyIn]


class TripIn(ApiModel):
    trip_id: str = Field(..., min_length=1)
    route: str = Field(..., min_length=1)
    trip_date: date
    cost: Decimal = Field(..., ge=0)
    passenger_staff_ids: List[str] = Field(default_factory=list)


class TransportGenerationRequest(ApiModel):
    trips: List[TripIn]


class GeneratedChargesResponse(ApiModel):
    created: int
    charges: List[ChargeOut]
