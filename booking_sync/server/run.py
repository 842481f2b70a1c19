"""HTTP server startup and main application entry point."""

import uvicorn

from booking_sync.config import load_settings
from booking_sync.logging import get_logger, setup_logging
from booking_sync.server.app import create_app


def main() -> None:
    """Build the application and serve it with uvicorn."""
    settings = load_settings()
    setup_logging(settings.log_level)
    logger = get_logger(__name__)

    logger.info(
        "starting_booking_sync",
        environment=settings.environment,
        host=settings.host,
        port=settings.port,
    )

    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
