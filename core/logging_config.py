"""
structlog configuration shared by the API process and Celery workers.

Library loggers (uvicorn, sqlalchemy, celery, httpx, stripe) are routed
through stdlib logging into the same ProcessorFormatter, so every line is
rendered the same way: coloured console output in DEBUG, JSON lines
elsewhere.
"""
import json
import logging
from typing import Any, List, MutableMapping

import structlog
from structlog.contextvars import merge_contextvars
from structlog.processors import TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings


# Event keys that must never reach a log sink with their value
REDACTED_KEYS = frozenset({
    "signature",
    "razorpay_signature",
    "stripe_signature",
    "secret_key",
    "webhook_secret",
    "key_secret",
    "authorization",
    "token",
})

# Chatty at INFO; raised so per-request logs stay readable
QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "stripe": logging.WARNING,
}


def redact_secrets(_, __, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    for key in event_dict.keys() & REDACTED_KEYS:
        event_dict[key] = "***"
    return event_dict


def add_service_name(_, __, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", settings.PROJECT_NAME)
    return event_dict


def _json_dumps(obj, default=None, **kwargs) -> str:
    # Decimal amounts and datetimes fall through to str()
    return json.dumps(obj, ensure_ascii=False, default=default or str, **kwargs)


def _renderer() -> Any:
    if settings.DEBUG:
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.JSONRenderer(serializer=_json_dumps)


def configure_logging() -> None:
    pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        structlog.stdlib.add_logger_name,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if not settings.DEBUG:
        pre_chain.append(add_service_name)

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[ProcessorFormatter.remove_processors_meta, _renderer()],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
