from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from billing.core.deps import get_actor_id
from billing.db.session import get_db
from billing.services.idempotency_service import (
    IdempotencyCheck,
    IdempotencyScope,
    IdempotencyService,
)

IDEMPOTENCY_HEADER = "Idempotency-Key"
ANONYMOUS_ACTOR = "anonymous"


async def require_idempotency_key(request: Request) -> str:
    key = request.headers.get(IDEMPOTENCY_HEADER)
    if not key:
        raise HTTPException(status_code=400, detail=f"Missing {IDEMPOTENCY_HEADER} header.")
    if len(key) > 128:
        raise HTTPException(status_code=400, detail=f"{IDEMPOTENCY_HEADER} too long.")
    return key


async def idempotency_guard(
    request: Request,
    idem_key: str = Depends(require_idempotency_key),
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> IdempotencyCheck:
    """
    For POST endpoints that create rows. Leaves the scope on
    request.state.idempotency_scope so the endpoint can store its response;
    the returned check says whether to replay instead.
    """
    scope = IdempotencyScope(
        actor_id=actor_id or ANONYMOUS_ACTOR,
        endpoint_key=f"{request.method}:{request.url.path}",
        idem_key=idem_key,
    )

    # body is already parsed and cached by the time dependencies run
    try:
        payload = await request.json()
    except ValueError:
        payload = {}

    try:
        check = IdempotencyService().check(
            db,
            scope,
            request_payload=payload if isinstance(payload, dict) else {"_": payload},
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    request.state.idempotency_scope = scope
    return check
