"""Logger configuration for the webhook relay."""

import sys

from loguru import logger

from .settings import LoggingConfig


def setup_logging(config: LoggingConfig) -> None:
    """Configure loguru for stdout output.

    Sets up logging with:
    - One JSON object per line when ``config.json`` is set, structured fields
      bound with ``logger.bind`` included under ``record.extra``
    - A colored human-readable format otherwise
    - Enqueued writes so delivery threads never contend on the sink
    """

    # Remove default loguru handler
    logger.remove()

    if config.json:
        logger.add(
            sink=sys.stdout,
            level=config.level,
            serialize=True,
            enqueue=True,
        )
    else:
        logger.add(
            sink=sys.stdout,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level> {extra}",
            level=config.level,
            colorize=True,
            enqueue=True,
        )

    logger.info(f"Log level: {config.level}")
