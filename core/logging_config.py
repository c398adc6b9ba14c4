"""structlog configuration shared by the API process and scripts."""
import logging
import sys

import structlog

from core.settings import AppSettings


def configure_logging(app_settings: AppSettings) -> None:
    """Route stdlib and structlog output through one renderer.

    JSON lines in deployed environments, a console renderer when running locally
    with JSON_LOGS disabled.
    """
    level = getattr(logging, app_settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if app_settings.JSON_LOGS
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
