#!/usr/bin/env python3
"""
FinancialsX Entry Point

Starts the FastAPI server on the configured host and port.
"""

import sys

import uvicorn

from financialsx.config import get_config
from financialsx.logging_config import setup_logging


def run_server(host: str, port: int, workers: int = 1, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "financialsx.api:app",
        host=host,
        port=port,
        workers=workers,
        reload=debug,
        log_level="info"
    )


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format,
                           log_file=config.log_file)
    logger.info(f"Starting FinancialsX on {config.api_host}:{config.api_port} "
                f"(data path: {config.data_path}, auth enabled: {config.auth_enabled})")

    try:
        run_server(config.api_host, config.api_port, workers=config.api_workers)
    except KeyboardInterrupt:
        logger.info("Shutting down FinancialsX")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
