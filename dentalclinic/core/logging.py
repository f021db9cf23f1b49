import logging
import sys

import structlog
from pythonjsonlogger import jsonlogger


def setup_logging(json_logs: bool = False, level: int = logging.INFO):
    """Structured logging setup.

    Standard library loggers go through a single stdout handler (JSON lines when
    ``json_logs`` is set). structlog is configured on top of the stdlib so both
    styles end up in the same stream.
    """
    if json_logs:
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s"
        )
        renderer = structlog.processors.JSONRenderer()
    else:
        formatter = logging.Formatter("%(levelname)-8s %(name)s: %(message)s")
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    if not any(getattr(h, "_dentalclinic", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        handler._dentalclinic = True
        root.addHandler(handler)
    root.setLevel(level)

    # Quiet chatty libraries
    logging.getLogger("twilio.http_client").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return structlog.get_logger("dentalclinic")
