import logging
import sys
from typing import Optional
from coachhub.core.config import settings
import newrelic.agent

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Parent of every module logger in the package (coachhub.services.chat_feed, ...)
APP_LOGGER = "coachhub"

# Libraries that log every request or realtime frame at INFO
NOISY_LOGGERS = ("uvicorn.access", "httpx", "hpack", "realtime")

def setup_logging(level: int = logging.INFO, app_level: Optional[str] = None) -> logging.Logger:
    """
    Configures logging for the application.
    Integrates with New Relic if configured.

    The root logger gets `level`; the coachhub loggers follow
    `settings.log_level` so service tracing can be turned up without
    library noise. Returns the coachhub logger.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)

    # New Relic's formatter adds trace/entity metadata for Logs in Context
    if settings.new_relic_license_key:
        try:
            handler.setFormatter(newrelic.agent.NewRelicContextFormatter())
        except Exception:
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger.addHandler(handler)

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.setLevel((app_level or settings.log_level).upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return app_logger
