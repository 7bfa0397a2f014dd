from __future__ import annotations

import logging
import sys
from typing import Any, Callable, MutableMapping, cast

import structlog

from booking_engine.config import DEBUG, LOG_LEVEL

# Type alias for structlog processor
Processor = Callable[[Any, str, MutableMapping[str, Any]], Any]

# Event keys never written in clear: credentials and guest contact details
REDACTED_KEYS = frozenset(
    {
        "api_key",
        "x_api_key",
        "signature",
        "stripe_signature",
        "webhook_secret",
        "secret",
        "guest_email",
        "guest_phone",
        "customer_email",
    }
)
REDACTED = "[redacted]"

QUIET_LOGGERS = ("urllib3", "requests", "stripe", "sqlalchemy.engine", "uvicorn.access")


def redact_sensitive(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Mask values of REDACTED_KEYS in an event."""
    for key in REDACTED_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog for the booking engine.

    JSON lines at INFO and above, colored console output at DEBUG.
    ``request_id`` and any other values bound through structlog.contextvars
    are merged into every event.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        level=LOG_LEVEL,
    )
    # The Stripe SDK and the HTTP stack log every request at INFO
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
    ]
    if DEBUG:
        processors += [
            structlog.dev.set_exc_info,
            cast(Processor, structlog.dev.ConsoleRenderer(colors=True)),
        ]
    else:
        processors += [
            structlog.processors.format_exc_info,
            cast(Processor, structlog.processors.JSONRenderer(default=str)),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
