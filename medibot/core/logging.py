import logging
import sys

import structlog
from pythonjsonlogger import jsonlogger

NOISY_LOGGERS = ("sqlalchemy.engine", "uvicorn.access", "python_http_client")


def setup_logging(json_logs: bool = False, level: int = logging.INFO):
    """Route structlog events and stdlib records through one stdout handler.

    Console rendering for development, one JSON object per line otherwise.
    Safe to call more than once.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    if not any(getattr(h, "_medibot", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        if json_logs:
            handler.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        else:
            handler.setFormatter(logging.Formatter("%(levelname)-8s %(name)s: %(message)s"))
        handler._medibot = True
        root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return structlog.get_logger("medibot")
