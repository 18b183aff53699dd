"""Command line interface for running the API server."""
import logging

import uvicorn

from config import get_settings


def main():
    """Run the API server with host, port and log level from settings."""
    settings = get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings['log_level']),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger = logging.getLogger(__name__)
    logger.info(f"Starting API on {settings['api_host']}:{settings['api_port']}")

    uvicorn.run(
        "api:create_app",
        factory=True,
        host=settings['api_host'],
        port=settings['api_port'],
        log_level=settings['log_level'].lower()
    )


if __name__ == "__main__":
    main()
