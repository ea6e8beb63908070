"""Logging configuration for the application"""
import logging
from typing import Optional

from app.core.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# SDK and HTTP client loggers that log every request at INFO
QUIET_LOGGERS = ("stripe", "openai", "httpx", "httpcore", "urllib3")


def setup_logging(level: Optional[str] = None):
    """Configure root logging at LOG_LEVEL and quiet the API client libraries"""
    level = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
