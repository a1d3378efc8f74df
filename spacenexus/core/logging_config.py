"""
Logging setup.

Service modules log plain f-strings through `logging.getLogger(__name__)`.
Middleware, Redis and webhook code emit key/value events through
`get_logger()`, rendered as one JSON object per line. Both share the stdout
handler, and structlog events pick up the request id bound by
RequestIDMiddleware.
"""

import logging
import sys

import structlog

from spacenexus.core.config import LOG_LEVEL

NOISY_LOGGERS = {
    "h11": logging.ERROR,
    "httpcore": logging.WARNING,
    "urllib3": logging.WARNING,
}

_configured = False


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Idempotent; main.py calls it at import time."""
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout,
    )
    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
