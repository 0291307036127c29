from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from billing.core.config import get_settings


def get_actor_id(request: Request) -> Optional[str]:
    """
    Who is acting, for the audit trail only. Authentication happens upstream;
    the gateway forwards the user id in the actor header.
    """
    actor = request.headers.get(get_settings().actor_id_header)
    if actor and len(actor) > 128:
        raise HTTPException(status_code=400, detail="Actor id too long.")
    return actor or None


def get_request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def page_params(limit: Optional[int] = None, offset: int = 0) -> tuple[int, int]:
    settings = get_settings()
    if limit is None:
        limit = settings.default_page_limit
    if limit < 1 or limit > settings.max_page_limit:
        raise HTTPException(
            status_code=400, detail=f"limit must be between 1 and {settings.max_page_limit}."
        )
    if offset < 0:
        raise HTTPException(status_code=400, detail="offset must not be negative.")
    return limit, offset
