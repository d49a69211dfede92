"""
TravelHub entry point
Serves the HTTP API; cache warm-up and cleanup run inside the same process.
"""

import uvicorn
from loguru import logger

from travelhub.api import create_app
from travelhub.settings import load_settings
from travelhub.utils import setup_logging


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)

    logger.info(
        f"Starting TravelHub ({settings.environment}) on "
        f"{settings.api_host}:{settings.api_port}"
    )

    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
    logger.info("TravelHub stopped")


if __name__ == "__main__":
    main()
