from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List

from billing.models.enums import ChargeType
from billing.services.proration_compute import ChargeCalculationInput, ChargeCalculationResult

SMALL_VALUE_THRESHOLD = Decimal("10")


def money2(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_headline_amount(amount: Decimal, currency_symbol: str = "$") -> str:
    return f"{currency_symbol}{money2(amount):,.2f}"


def format_breakdown_value(value: Decimal) -> str:
    """
    Small values (factors, counts, per-km rates) keep three decimals so that
    1.033 stays readable; larger ones are grouped with at most three fraction
    digits and no trailing zeros.
    """
    if value < SMALL_VALUE_THRESHOLD:
        return f"{value.quantize(Decimal('0.001'), rounding=ROUND_HALF_UP):.3f}"
    text = f"{value.quantize(Decimal('0.001'), rounding=ROUND_HALF_UP):,.3f}"
    return text.rstrip("0").rstrip(".")


def render_breakdown(result: ChargeCalculationResult) -> List[Dict[str, str]]:
    return [
        {
            "label": item.label,
            "value": str(item.value),
            "display": format_breakdown_value(item.value),
            "description": item.description,
        }
        for item in result.breakdown
    ]


@dataclass(frozen=True)
class ChargeDraft:
    """Payload handed to charge creation once a calculation is confirmed."""

    staff_id: str
    charge_type: ChargeType
    amount: Decimal
    description: str
    start_date: date
    end_date: date
    metadata: Dict[str, Any] = field(default_factory=dict)

    def as_payload(self) -> Dict[str, Any]:
        return {
            "staffId": self.staff_id,
            "type": self.charge_type.value,
            "amount": str(self.amount),
            "description": self.description,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "metadata": self.metadata,
        }


def calculation_metadata(result: ChargeCalculationResult) -> Dict[str, Any]:
    # JSON-safe: decimals travel as strings
    return {
        "baseAmount": str(result.base_amount),
        "prorationFactor": str(result.proration_factor),
        "totalDays": result.total_days,
        "breakdown": [
            {"label": b.label, "value": str(b.value), "description": b.description}
            for b in result.breakdown
        ],
    }


def to_charge_draft(inp: ChargeCalculationInput, result: ChargeCalculationResult) -> ChargeDraft:
    return ChargeDraft(
        staff_id=result.staff_id,
        charge_type=result.charge_type,
        amount=money2(result.prorated_amount),
        description=result.description,
        start_date=inp.start_date,
        end_date=inp.end_date,
        metadata=calculation_metadata(result),
    )
