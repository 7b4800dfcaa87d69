"""
Structured logging configuration using structlog.
Outputs JSON in production, pretty-printed in development.
Every line carries the request ID (bound by the request middleware) or the
sweeper run ID (bound by the sweeper job) through structlog contextvars.
"""

import logging
import sys
import structlog
from kennel.core.config import get_settings

# Third-party loggers that are far too chatty at INFO
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "stripe")

_configured = False


def _add_app_name(logger, method_name, event_dict):
    event_dict.setdefault("app", get_settings().APP_NAME)
    return event_dict


def setup_logging() -> None:
    """Configure structlog + stdlib logging once per process."""
    global _configured
    if _configured:
        return

    settings = get_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.ENVIRONMENT == "production":
        # Machine-parseable output for log shipping
        shared_processors.append(_add_app_name)
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ]
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
