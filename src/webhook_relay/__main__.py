"""Process entry point for the webhook relay."""

import sys

import uvicorn
from loguru import logger

from .api import create_app
from .config import get_config_manager, setup_logging

UVICORN_LOG_LEVELS = {"critical", "error", "warning", "info", "debug", "trace"}


def main() -> int:
    """Load configuration, start the HTTP listener and block until shutdown."""
    config = get_config_manager().load_config()
    setup_logging(config.logging)

    is_valid, errors = config.validate()
    if not is_valid:
        for error in errors:
            logger.error(f"Invalid configuration: {error}")
        return 2

    logger.bind(
        batch_size=config.batching.batch_size,
        batch_interval=config.batching.batch_interval_seconds,
        endpoint=config.delivery.endpoint,
        fatal_policy=config.delivery.fatal_policy.value,
    ).info("Webhook receiver initialized")

    uvicorn_level = config.logging.level.lower()
    if uvicorn_level not in UVICORN_LOG_LEVELS:
        uvicorn_level = "info"

    app = create_app(config)
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level=uvicorn_level)
    return 0


if __name__ == "__main__":
    sys.exit(main())
