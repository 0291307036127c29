from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing.core.hashing import payload_hash
from billing.models.idempotency_key import IdempotencyKeyRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdempotencyScope:
    """Who sent the key, to which endpoint, and the key itself."""

    actor_id: str
    endpoint_key: str
    idem_key: str


@dataclass(frozen=True)
class IdempotencyCheck:
    request_hash: str
    replay_json: Optional[Dict[str, Any]] = None
    replay_status: Optional[int] = None

    @property
    def is_replay(self) -> bool:
        return self.replay_json is not None


class IdempotencyService:
    def get_existing(self, db: Session, scope: IdempotencyScope) -> Optional[IdempotencyKeyRecord]:
        return db.execute(
            select(IdempotencyKeyRecord).where(
                IdempotencyKeyRecord.actor_id == scope.actor_id,
                IdempotencyKeyRecord.endpoint_key == scope.endpoint_key,
                IdempotencyKeyRecord.idem_key == scope.idem_key,
            )
        ).scalar_one_or_none()

    def check(
        self,
        db: Session,
        scope: IdempotencyScope,
        *,
        request_payload: Dict[str, Any],
    ) -> IdempotencyCheck:
        """
        First use of a key: nothing to replay. Same key and same payload:
        replay the stored response. Same key, different payload: ValueError.
        """
        req_hash = payload_hash(request_payload)
        existing = self.get_existing(db, scope)
        if not existing:
            return IdempotencyCheck(request_hash=req_hash)

        if existing.request_hash != req_hash:
            logger.warning(
                "[idempotency] key reuse with different payload actor=%s endpoint=%s",
                scope.actor_id,
                scope.endpoint_key,
            )
            raise ValueError("Idempotency-Key reuse with different payload is not allowed.")
        return IdempotencyCheck(
            request_hash=req_hash,
            replay_json=existing.response_json,
            replay_status=int(existing.response_status),
        )

    def store_response(
        self,
        db: Session,
        scope: IdempotencyScope,
        *,
        request_hash: str,
        response_json: Dict[str, Any],
        response_status: int,
    ) -> IdempotencyKeyRecord:
        """
        Commits the stored response together with whatever the endpoint has
        flushed in the same session. If another request stored a response for
        this scope first, this request's writes are rolled back and the
        winning record is returned instead.
        """
        existing = self.get_existing(db, scope)
        if existing:
            db.rollback()
            return existing

        record = IdempotencyKeyRecord(
            actor_id=scope.actor_id,
            endpoint_key=scope.endpoint_key,
            idem_key=scope.idem_key,
            request_hash=request_hash,
            response_status=str(response_status),
            response_json=response_json,
        )
        db.add(record)
        db.commit()
        return record
