from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from billing.models.enums import ChargeStatus, ChargeType
from billing.schemas.primitives import ApiModel, Factor, Money
from billing.schemas.proration import CalculationResultOut, ChargeCalculationRequest


class ChargeCreateRequest(ApiModel):
    """
    Either a confirmed calculator input (calculation) or the charge fields
    themselves.
    """
    billing_period_id: uuid.UUID
    calculation: Optional[ChargeCalculationRequest] = None

    staff_id: Optional[str] = None
    type: Optional[ChargeType] = None
    amount: Optional[Money] = None
    description: Optional[str] = Field(default=None, max_length=500)
    proration_factor: Factor = Decimal("1")
    charge_date: Optional[date] = None
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    source_id: Optional[str] = None
    source_type: Optional[str] = None
    notes: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _direct_fields_required(self):
        if self.calculation is None:
            missing = [
                name
                for name, value in (
                    ("staffId", self.staff_id),
                    ("type", self.type),
                    ("amount", self.amount),
                    ("description", self.description),
                )
                if value is None
            ]
            if missing:
                raise ValueError(f"Missing fields for a direct charge: {', '.join(missing)}")
        return self


class ChargeUpdateRequest(ApiModel):
    staff_id: Optional[str] = None
    charge_type: Optional[ChargeType] = Field(default=None, alias="type")
    amount: Optional[Money] = None
    description: Optional[str] = Field(default=None, max_length=500)
    proration_factor: Optional[Factor] = None
    charge_date: Optional[date] = None
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ChargeStatusRequest(ApiModel):
    status: ChargeStatus
    notes: Optional[str] = None


class ChargeOut(ApiModel):
    id: uuid.UUID
    billing_period_id: uuid.UUID
    staff_id: str
    type: ChargeType
    description: str
    amount: Decimal
    proration_factor: Decimal
    adjusted_amount: Decimal
    status: ChargeStatus
    charge_date: date
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    source_id: Optional[str] = None
    source_type: Optional[str] = None
    processed_at: Optional[datetime] = None
    processed_by: Optional[str] = None
    notes: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ChargeCreateResponse(ApiModel):
    charge: ChargeOut
    calculation: Optional[CalculationResultOut] = None


class ChargeListResponse(ApiModel):
    items: List[ChargeOut]
    count: int
