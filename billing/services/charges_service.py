from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.models.billing_period import BillingPeriod
from billing.models.charge import Charge
from billing.models.enums import BillingStatus, ChargeStatus, ChargeType
from billing.services.billing_periods_service import BillingPeriodService
from billing.services.charge_display import money2, to_charge_draft
from billing.services.errors import NotFoundError
from billing.services.proration_compute import (
    ChargeCalculationInput,
    ChargeCalculationResult,
    calculate,
    period_proration_factor,
)

logger = logging.getLogger(__name__)

FACTOR_PLACES = Decimal("0.000001")
CENT = Decimal("0.01")

ALLOWED_STATUS_TRANSITIONS: Dict[ChargeStatus, FrozenSet[ChargeStatus]] = {
    ChargeStatus.pending: frozenset(
        {ChargeStatus.approved, ChargeStatus.disputed, ChargeStatus.cancelled}
    ),
    ChargeStatus.approved: frozenset(
        {ChargeStatus.processed, ChargeStatus.disputed, ChargeStatus.cancelled}
    ),
    ChargeStatus.disputed: frozenset(
        {ChargeStatus.pending, ChargeStatus.approved, ChargeStatus.cancelled}
    ),
    ChargeStatus.processed: frozenset(),
    ChargeStatus.cancelled: frozenset(),
}

UPDATABLE_FIELDS = frozenset(
    {
        "staff_id",
        "charge_type",
        "amount",
        "description",
        "proration_factor",
        "charge_date",
        "due_date",
        "start_date",
        "end_date",
        "notes",
        "metadata",
    }
)


def _now():
    return datetime.now(timezone.utc)


def split_evenly(total: Decimal, parts: int) -> List[Decimal]:
    total = money2(total)
    share = (total / parts).quantize(CENT, rounding=ROUND_DOWN)
    return [share] * (parts - 1) + [total - share * (parts - 1)]


@dataclass(frozen=True)
class OccupancyWindow:
    """A staff member's stay in a room, as seen by rent generation."""

    staff_id: str
    start_date: date
    end_date: Optional[date]
    monthly_rent: Decimal
    label: str
    source_id: Optional[str] = None


@dataclass(frozen=True)
class TripShare:
    """A completed trip whose cost is split evenly between its passengers."""

    trip_id: str
    route: str
    trip_date: date
    cost: Decimal
    passenger_staff_ids: Sequence[str]


class ChargeService:
    def __init__(self, periods: Optional[BillingPeriodService] = None):
        self.periods = periods or BillingPeriodService()

    # ---------------------------
    # READS
    # ---------------------------

    def get_charge(self, db: Session, charge_id: uuid.UUID) -> Optional[Charge]:
        return db.get(Charge, charge_id)

    def require_charge(self, db: Session, charge_id: uuid.UUID) -> Charge:
        charge = self.get_charge(db, charge_id)
        if not charge:
            raise NotFoundError("Charge not found.")
        return charge

    def list_charges(
        self,
        db: Session,
        *,
        staff_id: Optional[str] = None,
        billing_period_id: Optional[uuid.UUID] = None,
        charge_type: Optional[ChargeType] = None,
        status: Optional[ChargeStatus] = None,
        min_amount: Optional[Decimal] = None,
        max_amount: Optional[Decimal] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Charge]:
        q = select(Charge)
        if staff_id:
            q = q.where(Charge.staff_id == staff_id)
        if billing_period_id:
            q = q.where(Charge.billing_period_id == billing_period_id)
        if charge_type is not None:
            q = q.where(Charge.charge_type == charge_type.value)
        if status is not None:
            q = q.where(Charge.status == status.value)
        if min_amount is not None:
            q = q.where(Charge.amount >= min_amount)
        if max_amount is not None:
            q = q.where(Charge.amount <= max_amount)
        if search:
            q = q.where(Charge.description.ilike(f"%{search}%"))
        q = q.order_by(Charge.charge_date.desc(), Charge.created_at.desc()).limit(limit).offset(offset)
        return list(db.execute(q).scalars())

    # ---------------------------
    # CREATE
    # ---------------------------

    def _require_open_period(self, db: Session, billing_period_id: uuid.UUID) -> BillingPeriod:
        period = self.periods.require_period(db, billing_period_id)
        if period.is_frozen:
            raise ValueError(f"Cannot add charges to {period.status} period.")
        return period

    def _build_charge(
        self,
        *,
        billing_period_id: uuid.UUID,
        staff_id: str,
        charge_type: ChargeType,
        amount: Decimal,
        description: str,
        proration_factor: Decimal = Decimal("1"),
        charge_date: Optional[date] = None,
        due_date: Optional[date] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        source_id: Optional[str] = None,
        source_type: Optional[str] = None,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Charge:
        if not staff_id:
            raise ValueError("Staff selection is required.")
        if amount < 0:
            raise ValueError("Charge amount must not be negative.")
        if not description or not description.strip():
            raise ValueError("Description is required.")
        if not (Decimal("0") <= proration_factor <= Decimal("1")):
            raise ValueError("Proration factor must be between 0 and 1.")

        charge_date = charge_date or start_date or date.today()
        if due_date is not None and due_date < charge_date:
            raise ValueError("Due date cannot be before the charge date.")

        return Charge(
            billing_period_id=billing_period_id,
            staff_id=staff_id,
            charge_type=ChargeType(charge_type).value,
            amount=money2(amount),
            description=description.strip(),
            proration_factor=proration_factor.quantize(FACTOR_PLACES),
            charge_date=charge_date,
            due_date=due_date,
            start_date=start_date,
            end_date=end_date,
            source_id=source_id,
            source_type=source_type,
            notes=notes,
            metadata_json=metadata or {},
            status=ChargeStatus.pending.value,
        )

    def create_charge(
        self,
        db: Session,
        *,
        billing_period_id: uuid.UUID,
        commit: bool = True,
        **fields: Any,
    ) -> Charge:
        """
        With commit=False the row is only flushed, so the caller can write
        related rows and commit them together.
        """
        self._require_open_period(db, billing_period_id)
        charge = self._build_charge(billing_period_id=billing_period_id, **fields)
        db.add(charge)
        if commit:
            db.commit()
            db.refresh(charge)
        else:
            db.flush()
        logger.info(
            "[charges] created id=%s staff=%s type=%s amount=%s",
            charge.id,
            charge.staff_id,
            charge.charge_type,
            charge.amount,
        )
        return charge

    def create_from_calculation(
        self,
        db: Session,
        *,
        billing_period_id: uuid.UUID,
        inp: ChargeCalculationInput,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
        commit: bool = True,
    ) -> Tuple[Charge, ChargeCalculationResult]:
        """
        Persist a confirmed calculation. The row keeps proration_factor=1 and
        the prorated amount; how it was reached lives in metadata.
        """
        result = calculate(inp)
        draft = to_charge_draft(inp, result)
        charge = self.create_charge(
            db,
            billing_period_id=billing_period_id,
            staff_id=draft.staff_id,
            charge_type=draft.charge_type,
            amount=draft.amount,
            description=draft.description,
            start_date=draft.start_date,
            end_date=draft.end_date,
            due_date=due_date,
            notes=notes,
            source_type="calculator",
            metadata=draft.metadata,
            commit=commit,
        )
        return charge, result

    # ---------------------------
    # MUTATIONS
    # ---------------------------

    def update_charge(
        self,
        db: Session,
        *,
        charge_id: uuid.UUID,
        changes: Dict[str, Any],
    ) -> Charge:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        charge = self.require_charge(db, charge_id)
        period = self.periods.require_period(db, charge.billing_period_id)
        if period.status == BillingStatus.exported.value:
            raise ValueError("Cannot edit charges in exported period.")
        if charge.status == ChargeStatus.processed.value:
            raise ValueError("Processed charges cannot be edited.")

        if "amount" in changes and changes["amount"] is not None:
            if changes["amount"] < 0:
                raise ValueError("Charge amount must not be negative.")
            changes["amount"] = money2(changes["amount"])
        if "proration_factor" in changes and changes["proration_factor"] is not None:
            factor = changes["proration_factor"]
            if not (Decimal("0") <= factor <= Decimal("1")):
                raise ValueError("Proration factor must be between 0 and 1.")
            changes["proration_factor"] = factor.quantize(FACTOR_PLACES)
        if "description" in changes:
            desc = changes["description"]
            if not desc or not desc.strip():
                raise ValueError("Description is required.")
            changes["description"] = desc.strip()
        if "charge_type" in changes and changes["charge_type"] is not None:
            changes["charge_type"] = ChargeType(changes["charge_type"]).value

        charge_date = changes.get("charge_date") or charge.charge_date
        due_date = changes["due_date"] if "due_date" in changes else charge.due_date
        if due_date is not None and due_date < charge_date:
            raise ValueError("Due date cannot be before the charge date.")

        for key, value in changes.items():
            if key == "metadata":
                charge.metadata_json = value or {}
            elif key in ("staff_id", "charge_type", "amount", "charge_date", "proration_factor") and value is None:
                continue
            else:
                setattr(charge, key, value)

        db.add(charge)
        db.commit()
        db.refresh(charge)
        logger.info("[charges] updated id=%s fields=%s", charge.id, sorted(changes))
        return charge

    def set_status(
        self,
        db: Session,
        *,
        charge_id: uuid.UUID,
        status: ChargeStatus,
        actor_id: Optional[str],
        notes: Optional[str] = None,
    ) -> Charge:
        charge = self.require_charge(db, charge_id)
        period = self.periods.require_period(db, charge.billing_period_id)
        if period.status == BillingStatus.exported.value:
            raise ValueError("Charges in an exported period are frozen.")

        current = ChargeStatus(charge.status)
        if status not in ALLOWED_STATUS_TRANSITIONS[current]:
            raise ValueError(f"Cannot move charge from {current.value} to {status.value}.")

        if status is ChargeStatus.processed:
            charge.processed_at = _now()
            charge.processed_by = actor_id or "system"
        if notes:
            charge.notes = notes

        charge.status = status.value
        db.add(charge)
        db.commit()
        db.refresh(charge)
        logger.info("[charges] id=%s %s -> %s", charge.id, current.value, status.value)
        return charge

    def delete_charge(self, db: Session, *, charge_id: uuid.UUID) -> None:
        charge = self.require_charge(db, charge_id)
        period = self.periods.require_period(db, charge.billing_period_id)
        if period.status == BillingStatus.exported.value:
            raise ValueError("Cannot delete charges from exported period.")
        if charge.status == ChargeStatus.processed.value:
            raise ValueError("Processed charges cannot be deleted.")
        db.delete(charge)
        db.commit()
        logger.info("[charges] deleted id=%s", charge_id)

    # ---------------------------
    # BULK GENERATION
    # ---------------------------

    def generate_rent_charges(
        self,
        db: Session,
        *,
        billing_period_id: uuid.UUID,
        occupancies: Iterable[OccupancyWindow],
    ) -> List[Charge]:
        """
        One rent charge per occupancy overlapping the period. The stay is
        clamped to the period and the monthly rent is stored with the share of
        the period it covers.
        """
        period = self._require_open_period(db, billing_period_id)

        created: List[Charge] = []
        for occ in occupancies:
            if occ.start_date > period.end_date:
                continue
            if occ.end_date is not None and occ.end_date < period.start_date:
                continue

            start = max(occ.start_date, period.start_date)
            end = min(occ.end_date or period.end_date, period.end_date)
            factor = period_proration_factor(start, end, period.start_date, period.end_date)
            if factor <= 0:
                logger.info(
                    "[charges] rent skipped staff=%s source=%s: empty overlap", occ.staff_id, occ.source_id
                )
                continue

            created.append(
                self._build_charge(
                    billing_period_id=period.id,
                    staff_id=occ.staff_id,
                    charge_type=ChargeType.rent,
                    amount=occ.monthly_rent,
                    description=f"Room rent for {occ.label}",
                    proration_factor=factor,
                    start_date=start,
                    end_date=end,
                    source_id=occ.source_id,
                    source_type="room_assignment",
                )
            )

        db.add_all(created)
        db.commit()
        for charge in created:
            db.refresh(charge)
        logger.info("[charges] generated %d rent charges for period %s", len(created), period.id)
        return created

    def generate_transport_charges(
        self,
        db: Session,
        *,
        billing_period_id: uuid.UUID,
        trips: Iterable[TripShare],
    ) -> List[Charge]:
        """
        Split each trip's cost evenly between its passengers, in whole cents;
        the last passenger carries the leftover cents so the shares sum to the
        trip cost. Trips outside the period, without cost, or without
        passengers produce nothing.
        """
        period = self._require_open_period(db, billing_period_id)

        created: List[Charge] = []
        for trip in trips:
            if not (period.start_date <= trip.trip_date <= period.end_date):
                continue
            if trip.cost <= 0 or not trip.passenger_staff_ids:
                continue

            shares = split_evenly(trip.cost, len(trip.passenger_staff_ids))
            for staff_id, share in zip(trip.passenger_staff_ids, shares):
                created.append(
                    self._build_charge(
                        billing_period_id=period.id,
                        staff_id=staff_id,
                        charge_type=ChargeType.transport,
                        amount=share,
                        description=f"Transport for {trip.route} on {trip.trip_date.isoformat()}",
                        charge_date=trip.trip_date,
                        source_id=trip.trip_id,
                        source_type="trip",
                    )
                )

        db.add_all(created)
        db.commit()
        for charge in created:
            db.refresh(charge)
        logger.info("[charges] generated %d transport charges for period %s", len(created), period.id)
        return created
