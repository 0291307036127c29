from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from billing.api.v1.charges import charge_to_schema
from billing.api.v1.errors import http_error
from billing.core.deps import get_actor_id, get_request_id
from billing.db.session import get_db
from billing.models.billing_period import BillingPeriod
from billing.models.enums import BillingStatus
from billing.schemas.billing_periods import (
    BillingPeriodCreateRequest,
    BillingPeriodOut,
    BillingPeriodStatusRequest,
    GeneratedChargesResponse,
    RentGenerationRequest,
    TransportGenerationRequest,
)
from billing.services.audit_service import AuditAction, AuditService
from billing.services.billing_periods_service import BillingPeriodService
from billing.services.charges_service import ChargeService, OccupancyWindow, TripShare

router = APIRouter(prefix="/billing-periods")


def _period_to_schema(p: BillingPeriod, charge_count: int = 0) -> BillingPeriodOut:
    return BillingPeriodOut(
        id=p.id,
        start_date=p.start_date,
        end_date=p.end_date,
        status=BillingStatus(p.status),
        payroll_export_date=p.payroll_export_date,
        charge_count=charge_count,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


def _period_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="billingPeriodId must be a UUID.")


@router.post("", status_code=201, response_model=BillingPeriodOut)
async def create_period(
    request: Request,
    body: BillingPeriodCreateRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    try:
        period = BillingPeriodService().create_period(
            db, start_date=body.start_date, end_date=body.end_date, status=body.status
        )
    except ValueError as e:
        raise http_error(e)

    AuditService().write(
        db,
        action=AuditAction.PERIOD_CREATED,
        entity_type="billing_period",
        entity_id=str(period.id),
        actor_id=actor_id,
        request_id=get_request_id(request),
        details={"start_date": period.start_date.isoformat(), "end_date": period.end_date.isoformat()},
    )
    return _period_to_schema(period)


@router.get("", response_model=List[BillingPeriodOut])
async def list_periods(
    status: Optional[BillingStatus] = Query(None),
    db: Session = Depends(get_db),
):
    svc = BillingPeriodService()
    periods = svc.list_periods(db, status=status)
    counts = svc.charge_counts(db, [p.id for p in periods])
    return [_period_to_schema(p, counts.get(p.id, 0)) for p in periods]


@router.get("/{period_id}", response_model=BillingPeriodOut)
async def get_period(period_id: str, db: Session = Depends(get_db)):
    svc = BillingPeriodService()
    period = svc.get_period(db, _period_id(period_id))
    if not period:
        raise HTTPException(status_code=404, detail="Billing period not found.")
    return _period_to_schema(period, svc.charge_counts(db, [period.id]).get(period.id, 0))


@router.post("/{period_id}/status", response_model=BillingPeriodOut)
async def transition_period(
    request: Request,
    period_id: str,
    body: BillingPeriodStatusRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    pid = _period_id(period_id)
    svc = BillingPeriodService()
    try:
        period = svc.transition(
            db, period_id=pid, to_status=body.status, export_date=body.export_date
        )
    except ValueError as e:
        raise http_error(e)

    AuditService().write(
        db,
        action=AuditAction.PERIOD_STATUS_CHANGED,
        entity_type="billing_period",
        entity_id=str(pid),
        actor_id=actor_id,
        request_id=get_request_id(request),
        details={"status": body.status.value},
    )
    return _period_to_schema(period, svc.charge_counts(db, [pid]).get(pid, 0))


@router.delete("/{period_id}", status_code=204)
async def delete_period(
    request: Request,
    period_id: str,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    pid = _period_id(period_id)
    try:
        BillingPeriodService().delete_period(db, period_id=pid)
    except ValueError as e:
        raise http_error(e)

    AuditService().write(
        db,
        action=AuditAction.PERIOD_DELETED,
        entity_type="billing_period",
        entity_id=str(pid),
        actor_id=actor_id,
        request_id=get_request_id(request),
        details={},
    )
    return Response(status_code=204)


# ─────────────────────────────────────────────────────────────
# BULK GENERATION
# ─────────────────────────────────────────────────────────────

@router.post("/{period_id}/rent-charges", status_code=201, response_model=GeneratedChargesResponse)
async def generate_rent_charges(
    request: Request,
    period_id: str,
    body: RentGenerationRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    pid = _period_id(period_id)
    occupancies = [
        OccupancyWindow(
            staff_id=o.staff_id,
            start_date=o.start_date,
            end_date=o.end_date,
            monthly_rent=o.monthly_rent,
            label=o.label,
            source_id=o.source_id,
        )
        for o in body.occupancies
    ]
    try:
        created = ChargeService().generate_rent_charges(db, billing_period_id=pid, occupancies=occupancies)
    except ValueError as e:
        raise http_error(e)

    AuditService().write(
        db,
        action=AuditAction.RENT_CHARGES_GENERATED,
        entity_type="billing_period",
        entity_id=str(pid),
        actor_id=actor_id,
        request_id=get_request_id(request),
        details={"created": len(created), "occupancies": len(occupancies)},
    )
    return GeneratedChargesResponse(created=len(created), charges=[charge_to_schema(c) for c in created])


@router.post("/{period_id}/transport-charges", status_code=201, response_model=GeneratedChargesResponse)
async def generate_transport_charges(
    request: Request,
    period_id: str,
    body: TransportGenerationRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    pid = _period_id(period_id)
    trips = [
        TripShare(
            trip_id=t.trip_id,
            route=t.route,
            trip_date=t.trip_date,
            cost=t.cost,
            passenger_staff_ids=tuple(t.passenger_staff_ids),
        )
        for t in body.trips
    ]
    try:
        created = ChargeService().generate_transport_charges(db, billing_period_id=pid, trips=trips)
    except ValueError as e:
        raise http_error(e)

    AuditService().write(
        db,
        action=AuditAction.TRANSPORT_CHARGES_GENERATED,
        entity_type="billing_period",
        entity_id=str(pid),
        actor_id=actor_id,
        request_id=get_request_id(request),
        details={"created": len(created), "trips": len(trips)},
    )
    return GeneratedChargesResponse(created=len(created), charges=[charge_to_schema(c) for c in created])
