from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.core.hashing import payload_hash
from billing.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    # Billing periods
    PERIOD_CREATED = "PERIOD_CREATED"
    PERIOD_STATUS_CHANGED = "PERIOD_STATUS_CHANGED"
    PERIOD_DELETED = "PERIOD_DELETED"

    # Charges
    CHARGE_CREATED = "CHARGE_CREATED"
    CHARGE_UPDATED = "CHARGE_UPDATED"
    CHARGE_STATUS_CHANGED = "CHARGE_STATUS_CHANGED"
    CHARGE_DELETED = "CHARGE_DELETED"

    # Bulk generation
    RENT_CHARGES_GENERATED = "RENT_CHARGES_GENERATED"
    TRANSPORT_CHARGES_GENERATED = "TRANSPORT_CHARGES_GENERATED"


class AuditService:
    def write(
        self,
        db: Session,
        *,
        action: str,
        entity_type: str,
        entity_id: str,
        actor_id: Optional[str],
        request_id: Optional[str],
        details: Dict[str, Any],
        commit: bool = True,
    ) -> AuditLog:
        row = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor_id=actor_id,
            request_id=request_id,
            payload_hash=payload_hash(details),
            details_json=details,
        )
        db.add(row)
        if commit:
            db.commit()
            db.refresh(row)
        else:
            db.flush()
        logger.info("[audit] %s %s=%s actor=%s", action, entity_type, entity_id, actor_id or "<none>")
        return row

    def list_for_entity(
        self,
        db: Session,
        *,
        entity_type: str,
        entity_id: str,
        limit: int = 50,
    ) -> List[AuditLog]:
        return list(
            db.execute(
                select(AuditLog)
                .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id))
                .order_by(AuditLog.created_at.desc())
                .limit(limit)
            ).scalars()
        )
