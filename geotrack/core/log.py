"""
Logging Setup

Configures loguru sinks from LoggingSettings. Modules log through
`from loguru import logger` directly; this only decides where it goes.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import LoggingSettings, settings


def setup_logging(config: Optional[LoggingSettings] = None, level: Optional[str] = None) -> None:
    """
    Replace loguru's default sink with the configured ones.

    Args:
        config: Logging settings (uses global settings if not specified)
        level: Overrides the configured level (e.g. from the command line)
    """
    config = config or settings.logging
    level = (level or config.level).upper()

    logger.remove()
    logger.add(sys.stderr, level=level, format=config.format, enqueue=True)

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.file,
            level=level,
            format=config.format,
            rotation=config.rotation,
            retention=config.retention,
            enqueue=True,
        )

    logger.debug(f"Logging configured at {level}")
