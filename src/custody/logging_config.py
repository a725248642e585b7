"""
Logging setup for custody entry points.
"""

import logging
from typing import Optional

from custody.config import Settings, settings as default_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging from settings."""
    settings = settings or default_settings
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format=LOG_FORMAT,
    )
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
