from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from billing.models.billing_period import BillingPeriod
from billing.models.charge import Charge
from billing.models.enums import BillingStatus, ChargeStatus
from billing.services.errors import NotFoundError

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


# status -> statuses reachable from it
ALLOWED_TRANSITIONS: Dict[BillingStatus, FrozenSet[BillingStatus]] = {
    BillingStatus.draft: frozenset({BillingStatus.processing, BillingStatus.cancelled}),
    BillingStatus.processing: frozenset(
        {BillingStatus.completed, BillingStatus.draft, BillingStatus.cancelled}
    ),
    BillingStatus.completed: frozenset({BillingStatus.exported, BillingStatus.cancelled}),
    BillingStatus.exported: frozenset(),
    BillingStatus.cancelled: frozenset(),
}

DELETABLE_STATUSES = frozenset({BillingStatus.draft.value, BillingStatus.cancelled.value})


class BillingPeriodService:
    # ---------------------------
    # READS
    # ---------------------------

    def get_period(self, db: Session, period_id: uuid.UUID) -> Optional[BillingPeriod]:
        return db.get(BillingPeriod, period_id)

    def require_period(self, db: Session, period_id: uuid.UUID) -> BillingPeriod:
        period = self.get_period(db, period_id)
        if not period:
            raise NotFoundError("Billing period not found.")
        return period

    def get_period_for_update(self, db: Session, period_id: uuid.UUID) -> BillingPeriod:
        """
        Lock the period row (FOR UPDATE) to serialize status transitions.
        """
        period = (
            db.execute(
                select(BillingPeriod).where(BillingPeriod.id == period_id).with_for_update()
            )
            .scalars()
            .one_or_none()
        )
        if not period:
            raise NotFoundError("Billing period not found.")
        return period

    def list_periods(
        self,
        db: Session,
        *,
        status: Optional[BillingStatus] = None,
    ) -> List[BillingPeriod]:
        q = select(BillingPeriod)
        if status is not None:
            q = q.where(BillingPeriod.status == status.value)
        q = q.order_by(BillingPeriod.start_date.desc())
        return list(db.execute(q).scalars())

    def charge_counts(self, db: Session, period_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, int]:
        """Charges per period in one grouped query; periods without charges are absent."""
        ids = list(period_ids)
        if not ids:
            return {}
        rows = db.execute(
            select(Charge.billing_period_id, func.count(Charge.id))
            .where(Charge.billing_period_id.in_(ids))
            .group_by(Charge.billing_period_id)
        ).all()
        return {pid: count for pid, count in rows}

    def find_overlapping(
        self,
        db: Session,
        *,
        start_date: date,
        end_date: date,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> List[BillingPeriod]:
        q = select(BillingPeriod).where(
            BillingPeriod.status != BillingStatus.cancelled.value,
            BillingPeriod.start_date <= end_date,
            BillingPeriod.end_date >= start_date,
        )
        if exclude_id is not None:
            q = q.where(BillingPeriod.id != exclude_id)
        return list(db.execute(q).scalars())

    # ---------------------------
    # MUTATIONS
    # ---------------------------

    def create_period(
        self,
        db: Session,
        *,
        start_date: date,
        end_date: date,
        status: BillingStatus = BillingStatus.draft,
    ) -> BillingPeriod:
        if end_date <= start_date:
            raise ValueError("End date must be after start date.")
        if status in (BillingStatus.exported, BillingStatus.cancelled):
            raise ValueError(f"A billing period cannot be created as {status.value}.")

        overlapping = self.find_overlapping(db, start_date=start_date, end_date=end_date)
        if overlapping:
            logger.warning(
                "[billing-periods] overlap rejected start=%s end=%s existing=%s",
                start_date,
                end_date,
                overlapping[0].id,
            )
            raise ValueError("Billing period overlaps an existing period.")

        period = BillingPeriod(
            start_date=start_date,
            end_date=end_date,
            status=status.value,
        )
        db.add(period)
        db.commit()
        db.refresh(period)
        logger.info("[billing-periods] created id=%s %s..%s", period.id, start_date, end_date)
        return period

    def transition(
        self,
        db: Session,
        *,
        period_id: uuid.UUID,
        to_status: BillingStatus,
        export_date: Optional[datetime] = None,
    ) -> BillingPeriod:
        """
        Rules:
        - draft -> processing | cancelled
        - processing -> completed | draft | cancelled
        - completed -> exported | cancelled
        - exported / cancelled are terminal
        Exporting stamps payroll_export_date, which may not precede end_date.
        """
        period = self.get_period_for_update(db, period_id)
        current = BillingStatus(period.status)

        if to_status not in ALLOWED_TRANSITIONS[current]:
            raise ValueError(
                f"Cannot move billing period from {current.value} to {to_status.value}."
            )

        if to_status is BillingStatus.exported:
            stamp = export_date or _now()
            if stamp.date() < period.end_date:
                raise ValueError("Payroll export date cannot be before the billing period end date.")
            period.payroll_export_date = stamp

        period.status = to_status.value
        db.add(period)
        db.commit()
        db.refresh(period)
        logger.info(
            "[billing-periods] id=%s %s -> %s", period.id, current.value, to_status.value
        )
        return period

    def delete_period(self, db: Session, *, period_id: uuid.UUID) -> None:
        period = self.require_period(db, period_id)
        if period.status not in DELETABLE_STATUSES:
            raise ValueError("Only draft or cancelled billing periods can be deleted.")
        processed = db.execute(
            select(func.count(Charge.id)).where(
                Charge.billing_period_id == period.id,
                Charge.status == ChargeStatus.processed.value,
            )
        ).scalar_one()
        if processed:
            raise ValueError("Billing period holds processed charges and cannot be deleted.")
        db.delete(period)
        db.commit()
        logger.info("[billing-periods] deleted id=%s", period_id)
