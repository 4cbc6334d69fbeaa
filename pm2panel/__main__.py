"""
Entry point for running pm2panel via `python -m pm2panel`.

Validates the configuration, sets up logging and starts uvicorn with the
application factory.
"""

import logging
import sys

import uvicorn

from .config import Config
from .exceptions import ConfigError
from .main import setup_logging

logger = logging.getLogger("pm2panel")


def main():
    """Run the pm2panel server."""
    config = Config.from_env()
    setup_logging(config)
    try:
        config.validate()
    except ConfigError as e:
        logger.critical(f"Error: {e}")
        sys.exit(1)

    uvicorn.run(
        "pm2panel.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=False,
        server_header=False,
    )


if __name__ == "__main__":
    main()
