from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from billing.api.v1.errors import http_error
from billing.core.config import get_settings
from billing.core.deps import get_actor_id, get_request_id, page_params
from billing.core.deps_idempotency import idempotency_guard
from billing.db.session import get_db
from billing.models.charge import Charge
from billing.models.enums import ChargeStatus, ChargeType
from billing.schemas.audit import AuditEntryOut
from billing.schemas.charges import (
    ChargeCreateRequest,
    ChargeCreateResponse,
    ChargeListResponse,
    ChargeOut,
    ChargeStatusRequest,
    ChargeUpdateRequest,
)
from billing.schemas.proration import (
    CalculationResponse,
    CalculationResultOut,
    ChargeCalculationRequest,
)
from billing.services.audit_service import AuditAction, AuditService
from billing.services.charge_display import to_charge_draft
from billing.services.charges_service import ChargeService
from billing.services.idempotency_service import IdempotencyCheck, IdempotencyService
from billing.services.proration_compute import ChargeValidationError, try_calculate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/charges")


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────

def charge_to_schema(c: Charge) -> ChargeOut:
    return ChargeOut(
        id=c.id,
        billing_period_id=c.billing_period_id,
        staff_id=c.staff_id,
        type=ChargeType(c.charge_type),
        description=c.description,
        amount=c.amount,
        proration_factor=c.proration_factor,
        adjusted_amount=c.adjusted_amount.quantize(Decimal("0.01")),
        status=ChargeStatus(c.status),
        charge_date=c.charge_date,
        due_date=c.due_date,
        start_date=c.start_date,
        end_date=c.end_date,
        source_id=c.source_id,
        source_type=c.source_type,
        processed_at=c.processed_at,
        processed_by=c.processed_by,
        notes=c.notes,
        metadata=c.metadata_json or {},
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


def _parse_uuid(raw: str, name: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{name} must be a UUID.")


# ─────────────────────────────────────────────────────────────
# CALCULATE (no persistence)
# ─────────────────────────────────────────────────────────────

@router.post("/calculate", response_model=CalculationResponse)
async def calculate_charge(body: ChargeCalculationRequest):
    try:
        inp = body.to_input()
    except ChargeValidationError as e:
        return JSONResponse(status_code=422, content={"detail": e.as_dict()})

    outcome = try_calculate(inp)
    if not outcome.ok:
        logger.debug("[charges/calculate] rejected code=%s field=%s", outcome.error.code, outcome.error.field)
        return JSONResponse(status_code=422, content={"detail": outcome.error.as_dict()})

    return CalculationResponse.build(
        outcome.result,
        to_charge_draft(inp, outcome.result),
        get_settings().currency_symbol,
    )


# ─────────────────────────────────────────────────────────────
# CREATE
# ─────────────────────────────────────────────────────────────

@router.post("", status_code=201, response_model=ChargeCreateResponse)
async def create_charge(
    request: Request,
    body: ChargeCreateRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
    idem: IdempotencyCheck = Depends(idempotency_guard),
):
    if idem.is_replay:
        logger.info("[charges] idempotent replay key=%s", request.state.idempotency_scope.idem_key)
        return JSONResponse(status_code=idem.replay_status, content=idem.replay_json)

    svc = ChargeService()
    calculation_out = None
    try:
        if body.calculation is not None:
            charge, result = svc.create_from_calculation(
                db,
                billing_period_id=body.billing_period_id,
                inp=body.calculation.to_input(),
                due_date=body.due_date,
                notes=body.notes,
                commit=False,
            )
            calculation_out = CalculationResultOut.from_result(result)
        else:
            charge = svc.create_charge(
                db,
                billing_period_id=body.billing_period_id,
                staff_id=body.staff_id,
                charge_type=body.type,
                amount=body.amount,
                description=body.description,
                proration_factor=body.proration_factor,
                charge_date=body.charge_date,
                due_date=body.due_date,
                start_date=body.start_date,
                end_date=body.end_date,
                source_id=body.source_id,
                source_type=body.source_type,
                notes=body.notes,
                metadata=body.metadata,
                commit=False,
            )
    except ValueError as e:
        raise http_error(e)

    AuditService().write(
        db,
        action=AuditAction.CHARGE_CREATED,
        entity_type="charge",
        entity_id=str(charge.id),
        actor_id=actor_id,
        request_id=get_request_id(request),
        details={
            "billing_period_id": str(charge.billing_period_id),
            "staff_id": charge.staff_id,
            "charge_type": charge.charge_type,
            "amount": str(charge.amount),
        },
        commit=False,
    )

    content = jsonable_encoder(
        ChargeCreateResponse(charge=charge_to_schema(charge), calculation=calculation_out)
    )
    stored = IdempotencyService().store_response(
        db,
        request.state.idempotency_scope,
        request_hash=idem.request_hash,
        response_json=content,
        response_status=201,
    )
    return JSONResponse(status_code=int(stored.response_status), content=stored.response_json)


# ─────────────────────────────────────────────────────────────
# READ
# ─────────────────────────────────────────────────────────────

@router.get("", response_model=ChargeListResponse)
async def list_charges(
    staff_id: Optional[str] = Query(None, alias="staffId"),
    billing_period_id: Optional[str] = Query(None, alias="billingPeriodId"),
    charge_type: Optional[ChargeType] = Query(None, alias="type"),
    status: Optional[ChargeStatus] = Query(None),
    min_amount: Optional[Decimal] = Query(None, alias="minAmount", ge=0),
    max_amount: Optional[Decimal] = Query(None, alias="maxAmount", ge=0),
    search: Optional[str] = Query(None, max_length=200),
    page: tuple = Depends(page_params),
    db: Session = Depends(get_db),
):
    limit, offset = page
    period_uuid = _parse_uuid(billing_period_id, "billingPeriodId") if billing_period_id else None

    rows = ChargeService().list_charges(
        db,
        staff_id=staff_id,
        billing_period_id=period_uuid,
        charge_type=charge_type,
        status=status,
        min_amount=min_amount,
        max_amount=max_amount,
        search=search,
        limit=limit,
        offset=offset,
    )
    return ChargeListResponse(items=[charge_to_schema(c) for c in rows], count=len(rows))


@router.get("/{charge_id}", response_model=ChargeOut)
async def get_charge(charge_id: str, db: Session = Depends(get_db)):
    charge = ChargeService().get_charge(db, _parse_uuid(charge_id, "chargeId"))
    if not charge:
        raise HTTPException(status_code=404, detail="Charge not found.")
    return charge_to_schema(charge)


@router.get("/{charge_id}/audit", response_model=List[AuditEntryOut])
async def charge_audit_trail(charge_id: str, db: Session = Depends(get_db)):
    cid = _parse_uuid(charge_id, "chargeId")
    rows = AuditService().list_for_entity(db, entity_type="charge", entity_id=str(cid))
    return [
        AuditEntryOut(
            action=r.action,
            actor_id=r.actor_id,
            request_id=r.request_id,
            details=r.details_json or {},
            created_at=r.created_at,
        )
        for r in rows
    ]


# ─────────────────────────────────────────────────────────────
# UPDATE / STATUS / DELETE
# ─────────────────────────────────────────────────────────────

@router.patch("/{charge_id}", response_model=ChargeOut)
async def update_charge(
    request: Request,
    charge_id: str,
    body: ChargeUpdateRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    cid = _parse_uuid(charge_id, "chargeId")
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update.")

    try:
        charge = ChargeService().update_charge(db, charge_id=cid, changes=changes)
    except ValueError as e:
        raise http_error(e)

    AuditService().write(
        db,
        action=AuditAction.CHARGE_UPDATED,
        entity_type="charge",
        entity_id=str(cid),
        actor_id=actor_id,
        request_id=get_request_id(request),
        details={"fields": sorted(changes)},
    )
    return charge_to_schema(charge)


@router.post("/{charge_id}/status", response_model=ChargeOut)
async def set_charge_status(
    request: Request,
    charge_id: str,
    body: ChargeStatusRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    cid = _parse_uuid(charge_id, "chargeId")
    try:
        charge = ChargeService().set_status(
            db, charge_id=cid, status=body.status, actor_id=actor_id, notes=body.notes
        )
    except ValueError as e:
        raise http_error(e)

    AuditService().write(
        db,
        action=AuditAction.CHARGE_STATUS_CHANGED,
        entity_type="charge",
        entity_id=str(cid),
        actor_id=actor_id,
        request_id=get_request_id(request),
        details={"status": body.status.value},
    )
    return charge_to_schema(charge)


@router.delete("/{charge_id}", status_code=204)
async def delete_charge(
    request: Request,
    charge_id: str,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    cid = _parse_uuid(charge_id, "chargeId")
    try:
        ChargeService().delete_charge(db, charge_id=cid)
    except ValueError as e:
        raise http_error(e)

    AuditService().write(
        db,
        action=AuditAction.CHARGE_DELETED,
        entity_type="charge",
        entity_id=str(cid),
        actor_id=actor_id,
        request_id=get_request_id(request),
        details={},
    )
    return Response(status_code=204)
