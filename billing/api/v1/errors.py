from __future__ import annotations

from fastapi import HTTPException

from billing.services.errors import NotFoundError
from billing.services.proration_compute import ChargeValidationError


def http_error(e: ValueError) -> HTTPException:
    """
    Service ValueErrors -> HTTP: missing rows 404, calculator input 422 with a
    structured body, every other business-rule violation 409.
    """
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ChargeValidationError):
        return HTTPException(status_code=422, detail=e.as_dict())
    return HTTPException(status_code=409, detail=str(e))
