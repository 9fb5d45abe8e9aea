"""DLVR API service entry point.

Provides the application factory target for ASGI servers and a run()
function for direct execution:

    uvicorn --factory dlvr.api.main:get_app
    dlvr-api
"""

import logging

from fastapi import FastAPI

from dlvr.api import create_app
from dlvr.core.settings import get_settings

logger = logging.getLogger(__name__)


def get_app() -> FastAPI:
    """Build the app from environment settings."""
    return create_app(get_settings())


def run() -> None:
    """Run the API server using uvicorn.

    Called by the dlvr-api console script defined in pyproject.toml.
    """
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting DLVR API on %s:%d", settings.api_host, settings.api_port)

    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    run()
