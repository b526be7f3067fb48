#!/usr/bin/env python3
"""
Game Bank Entry Point

Starts the FastAPI server with the ledger and the settlement scheduler.
"""

import sys

from game_bank.api import run_server
from game_bank.config import get_config
from game_bank.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format)

    logger.info(f"Starting Game Bank on {config.api_host}:{config.api_port}")
    logger.info(f"Database: {config.database_url}")
    if config.settlement_enabled:
        logger.info(f"Settlement tick every {config.settlement_interval_seconds}s")

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        logger.info("Shutting down Game Bank")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
