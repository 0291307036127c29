from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, Optional, Tuple, Union

from billing.models.enums import ChargeType

REFERENCE_MONTH_DAYS = 30


class ChargeValidationError(ValueError):
    """
    Raised before any arithmetic when a calculation input is unusable.
    code is stable and machine readable, field names the offending input.
    """

    def __init__(self, code: str, field: str, message: str):
        super().__init__(message)
        self.code = code
        self.field = field
        self.message = message

    def as_dict(self) -> dict:
        return {"code": self.code, "field": self.field, "message": self.message}


def _d(x: Any, field_name: str) -> Decimal:
    if x is None:
        raise ChargeValidationError("missing_field", field_name, f"{field_name} is required.")
    if isinstance(x, Decimal):
        return x
    try:
        return Decimal(str(x))
    except (InvalidOperation, TypeError, ValueError):
        raise ChargeValidationError("invalid_number", field_name, f"Invalid numeric input for {field_name}: {x}")


# ---------------------------------------------------------------------------
# Charge parameters: one variant per charge type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RentParams:
    charge_type: ClassVar[ChargeType] = ChargeType.rent


@dataclass(frozen=True)
class UtilitiesParams:
    charge_type: ClassVar[ChargeType] = ChargeType.utilities
    occupant_count: int


@dataclass(frozen=True)
class TransportParams:
    charge_type: ClassVar[ChargeType] = ChargeType.transport
    distance: Decimal
    passenger_count: int


@dataclass(frozen=True)
class OtherParams:
    charge_type: ClassVar[ChargeType] = ChargeType.other


ChargeParams = Union[RentParams, UtilitiesParams, TransportParams, OtherParams]


def build_params(
    charge_type: ChargeType | str,
    *,
    occupant_count: Optional[int] = None,
    transport_distance: Any = None,
    passenger_count: Optional[int] = None,
) -> ChargeParams:
    """
    Flat form -> tagged params. Fields that do not belong to the charge type
    are ignored; fields that do are required.
    """
    try:
        ct = ChargeType(charge_type)
    except ValueError:
        raise ChargeValidationError("invalid_charge_type", "chargeType", f"Unknown charge type: {charge_type}")

    if ct is ChargeType.rent:
        return RentParams()
    if ct is ChargeType.other:
        return OtherParams()
    if ct is ChargeType.utilities:
        if occupant_count is None:
            raise ChargeValidationError(
                "missing_field", "occupantCount", "occupantCount is required for utilities charges."
            )
        return UtilitiesParams(occupant_count=int(occupant_count))
    if transport_distance is None:
        raise ChargeValidationError(
            "missing_field", "transportDistance", "transportDistance is required for transport charges."
        )
    if passenger_count is None:
        raise ChargeValidationError(
            "missing_field", "passengerCount", "passengerCount is required for transport charges."
        )
    return TransportParams(
        distance=_d(transport_distance, "transportDistance"),
        passenger_count=int(passenger_count),
    )


# ---------------------------------------------------------------------------
# Inputs / outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChargeCalculationInput:
    staff_id: str
    start_date: date
    end_date: date
    base_amount: Decimal
    description: str
    params: ChargeParams

    @property
    def charge_type(self) -> ChargeType:
        return self.params.charge_type


@dataclass(frozen=True)
class BreakdownItem:
    label: str
    value: Decimal
    description: str


@dataclass(frozen=True)
class ChargeCalculationResult:
    charge_type: ChargeType
    staff_id: str
    base_amount: Decimal
    proration_factor: Decimal
    prorated_amount: Decimal
    total_days: int
    description: str
    breakdown: Tuple[BreakdownItem, ...]
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CalculationOutcome:
    result: Optional[ChargeCalculationResult] = None
    error: Optional[ChargeValidationError] = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Period arithmetic
# ---------------------------------------------------------------------------

def days_between_inclusive(start: date, end: date) -> int:
    return (end - start).days + 1


def proration_factor(total_days: int, month_days: int = REFERENCE_MONTH_DAYS) -> Decimal:
    return Decimal(total_days) / Decimal(month_days)


def period_proration_factor(
    start: date,
    end: date,
    period_start: date,
    period_end: date,
) -> Decimal:
    """
    Share of a billing period covered by an occupancy window, capped at 1.

    Day counts here are end-exclusive (period 1st..31st counts 30 days), which
    is how bulk rent generation has always measured overlap. An empty or
    inverted window yields 0.
    """
    period_days = math.ceil((period_end - period_start).days)
    if period_days <= 0:
        raise ValueError("Billing period must span at least one day.")
    actual_days = math.ceil((end - start).days)
    if actual_days <= 0:
        return Decimal("0")
    return min(Decimal(actual_days) / Decimal(period_days), Decimal("1"))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

def validate_input(inp: ChargeCalculationInput) -> None:
    if inp.start_date >= inp.end_date:
        raise ChargeValidationError(
            "invalid_date_range", "endDate", "End date must be after start date."
        )
    if inp.base_amount < 0:
        raise ChargeValidationError(
            "negative_amount", "baseAmount", "Base amount must not be negative."
        )
    if not inp.description or not inp.description.strip():
        raise ChargeValidationError(
            "empty_description", "description", "Description is required."
        )

    params = inp.params
    if isinstance(params, UtilitiesParams):
        if params.occupant_count <= 0:
            raise ChargeValidationError(
                "non_positive_value", "occupantCount", "occupantCount must be at least 1."
            )
    elif isinstance(params, TransportParams):
        if params.distance <= 0:
            raise ChargeValidationError(
                "non_positive_value", "transportDistance", "transportDistance must be greater than 0."
            )
        if params.passenger_count <= 0:
            raise ChargeValidationError(
                "non_positive_value", "passengerCount", "passengerCount must be at least 1."
            )


def _factor_item(factor: Decimal, total_days: int) -> BreakdownItem:
    return BreakdownItem(
        "Proration Factor", factor, f"{total_days} days / {REFERENCE_MONTH_DAYS} days"
    )


def calculate(inp: ChargeCalculationInput) -> ChargeCalculationResult:
    """
    Prorate a charge over its date range and explain how the figure was reached.

    RENT / OTHER: base * days / 30
    UTILITIES:    (base / occupants) * days / 30
    TRANSPORT:    base * distance * passengers (dates ignored)

    Products are taken before dividing by 30 so that exact cases stay exact.
    """
    validate_input(inp)

    base = inp.base_amount
    total_days = days_between_inclusive(inp.start_date, inp.end_date)
    factor = proration_factor(total_days)
    month = Decimal(REFERENCE_MONTH_DAYS)
    params = inp.params

    if isinstance(params, RentParams):
        prorated = base * total_days / month
        breakdown = (
            BreakdownItem("Base Monthly Rent", base, "Monthly rent amount"),
            BreakdownItem("Days in Period", Decimal(total_days), "Actual occupancy days"),
            _factor_item(factor, total_days),
            BreakdownItem("Prorated Amount", prorated, "Final rent charge"),
        )
    elif isinstance(params, UtilitiesParams):
        occupants = Decimal(params.occupant_count)
        per_occupant = base / occupants
        prorated = base * total_days / (occupants * month)
        breakdown = (
            BreakdownItem("Total Utility Cost", base, "Total utility bill"),
            BreakdownItem("Occupant Count", occupants, "Number of occupants"),
            BreakdownItem("Per Occupant Share", per_occupant, "Individual share"),
            _factor_item(factor, total_days),
            BreakdownItem("Final Amount", prorated, "Prorated utility charge"),
        )
    elif isinstance(params, TransportParams):
        passengers = Decimal(params.passenger_count)
        prorated = base * params.distance * passengers
        breakdown = (
            BreakdownItem("Cost per Passenger-KM", base, "Base transport rate"),
            BreakdownItem("Distance (KM)", params.distance, "Trip distance"),
            BreakdownItem("Passenger Count", passengers, "Number of passengers"),
            BreakdownItem("Total Cost", prorated, "Total transport charge"),
        )
    elif isinstance(params, OtherParams):
        prorated = base * total_days / month
        breakdown = (
            BreakdownItem("Base Amount", base, "Charge amount"),
            _factor_item(factor, total_days),
            BreakdownItem("Final Amount", prorated, "Prorated charge"),
        )
    else:
        raise TypeError(f"Unsupported charge params: {type(params).__name__}")

    warnings: Tuple[str, ...] = ()
    if not isinstance(params, TransportParams) and total_days > REFERENCE_MONTH_DAYS:
        warnings = (
            f"period of {total_days} days exceeds the {REFERENCE_MONTH_DAYS}-day reference month",
        )

    return ChargeCalculationResult(
        charge_type=inp.charge_type,
        staff_id=inp.staff_id,
        base_amount=base,
        proration_factor=factor,
        prorated_amount=prorated,
        total_days=total_days,
        description=inp.description,
        breakdown=breakdown,
        warnings=warnings,
    )


def try_calculate(inp: ChargeCalculationInput) -> CalculationOutcome:
    try:
        return CalculationOutcome(result=calculate(inp))
    except ChargeValidationError as e:
        return CalculationOutcome(error=e)
