from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import Field

from billing.models.enums import ChargeType
from billing.schemas.primitives import ApiModel
from billing.services.charge_display import ChargeDraft, format_headline_amount, render_breakdown
from billing.services.proration_compute import (
    ChargeCalculationInput,
    ChargeCalculationResult,
    build_params,
)


class ChargeCalculationRequest(ApiModel):
    """
    Flat calculator form. Range and sign checks are left to the engine so
    that they come back as structured calculation errors.
    """
    charge_type: ChargeType
    staff_id: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    base_amount: Decimal
    description: str = ""

    # type specific
    occupant_count: Optional[int] = None
    transport_distance: Optional[Decimal] = None
    passenger_count: Optional[int] = None

    def to_input(self) -> ChargeCalculationInput:
        params = build_params(
            self.charge_type,
            occupant_count=self.occupant_count,
            transport_distance=self.transport_distance,
            passenger_count=self.passenger_count,
        )
        return ChargeCalculationInput(
            staff_id=self.staff_id,
            start_date=self.start_date,
            end_date=self.end_date,
            base_amount=self.base_amount,
            description=self.description,
            params=params,
        )


class BreakdownRow(ApiModel):
    label: str
    value: Decimal
    display: str
    description: str


class CalculationResultOut(ApiModel):
    charge_type: ChargeType
    staff_id: str
    base_amount: Decimal
    proration_factor: Decimal
    prorated_amount: Decimal
    total_days: int
    description: str
    breakdown: List[BreakdownRow]
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ChargeCalculationResult) -> "CalculationResultOut":
        return cls(
            charge_type=result.charge_type,
            staff_id=result.staff_id,
            base_amount=result.base_amount,
            proration_factor=result.proration_factor,
            prorated_amount=result.prorated_amount,
            total_days=result.total_days,
            description=result.description,
            breakdown=[BreakdownRow(**row) for row in render_breakdown(result)],
            warnings=list(result.warnings),
        )


class CalculationDisplay(ApiModel):
    headline: str
    charge_label: str


class CalculationResponse(ApiModel):
    result: CalculationResultOut
    display: CalculationDisplay
    draft: Dict[str, Any]

    @classmethod
    def build(
        cls,
        result: ChargeCalculationResult,
        draft: ChargeDraft,
        currency_symbol: str,
    ) -> "CalculationResponse":
        return cls(
            result=CalculationResultOut.from_result(result),
            display=CalculationDisplay(
                headline=format_headline_amount(result.prorated_amount, currency_symbol),
                charge_label=result.charge_type.value.capitalize(),
            ),
            draft=draft.as_payload(),
        )
