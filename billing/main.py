import logging

from fastapi import FastAPI

from billing.api.v1.router import v1_router
from billing.core.config import get_settings
from billing.core.logging import configure_logging
from billing.core.middleware import RequestIdMiddleware

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "health", "description": "Liveness and database reachability."},
    {"name": "charges", "description": "Proration calculator and staff charges."},
    {"name": "billing-periods", "description": "Payroll periods and bulk charge generation."},
    {"name": "analytics", "description": "Billing and per-staff summaries."},
]


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        openapi_tags=OPENAPI_TAGS,
    )
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)
    app.include_router(v1_router, prefix=settings.api_prefix)

    logger.info("[startup] %s env=%s prefix=%s", settings.app_name, settings.environment, settings.api_prefix)
    return app


app = create_app()
