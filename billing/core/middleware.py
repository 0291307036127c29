import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("billing.http")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with a request-id (taken from the configured header or
    generated), echoes it on the response and writes one access line per
    request. The id also lands on audit rows through request.state.
    """

    def __init__(self, app, header_name: str = "X-Request-Id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = rid

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        response.headers[self.header_name] = rid
        logger.info(
            "[http] %s %s -> %s",
            request.method,
            request.url.path,
            response.status_code,
            extra={"request_id": rid, "duration_ms": elapsed_ms},
        )
        return response
