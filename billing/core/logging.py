import logging
import sys

from pythonjsonlogger import jsonlogger

from billing.core.config import Settings


def configure_logging(settings: Settings) -> None:
    """
    JSON lines on stdout. Every record carries the service name and
    environment; extras passed by callers (request_id, duration_ms) are
    emitted as top-level keys.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # clear handlers if reloaded
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
            static_fields={"service": settings.app_name, "env": settings.environment},
        )
    )
    root.addHandler(handler)

    logging.getLogger("uvicorn.error").setLevel(level)
    # access lines come from RequestIdMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else max(level, logging.WARNING)
    )
