"""Logging configuration."""
import logging
from typing import Optional

from filetagger.core.config import Settings, settings as default_settings


def configure_logging(config: Optional[Settings] = None, verbose: bool = False) -> None:
    """Configure root logging for scripts and the CLI.

    Args:
        config: Settings providing LOG_LEVEL, LOG_FORMAT and SQL_ECHO
        verbose: Force DEBUG level regardless of LOG_LEVEL
    """
    config = config or default_settings
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.LOG_FORMAT)

    # SQL query logging
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if config.SQL_ECHO else logging.WARNING
    )
