"""Structured JSON logging with per-request context.

The request middleware binds the request id and the acting user. Every record
logged while the request runs carries both, including ledger and enrollment
logs written deep inside the services.
"""

import contextvars
import logging
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger

from enrollpay.config import settings

REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
ACTOR_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("actor_id", default=None)


def bind_request_context(request_id: Optional[str], actor_id: Optional[str]) -> None:
    REQUEST_ID_VAR.set(request_id)
    ACTOR_ID_VAR.set(actor_id)


def clear_request_context() -> None:
    bind_request_context(None, None)


class RequestContextFilter(logging.Filter):
    """Copy the bound request context onto records that don't set it explicitly"""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = REQUEST_ID_VAR.get()
        if getattr(record, "actor_id", None) is None:
            record.actor_id = ACTOR_ID_VAR.get()
        return True


class EnrollPayJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["environment"] = settings.ENVIRONMENT
        log_record["app_name"] = settings.APP_NAME

        # Null context fields are noise outside a request (cron sweep, startup)
        for key in ("correlation_id", "actor_id"):
            if log_record.get(key) is None:
                log_record.pop(key, None)


def setup_logging() -> None:
    """Configure application logging. Safe to call more than once."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())

    if settings.LOG_FORMAT == "json":
        handler.setFormatter(EnrollPayJsonFormatter(
            fmt="%(asctime)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
    else:
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))
    root_logger.handlers = [handler]

    # RequestContextMiddleware already logs one line per request
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
