"""Entry point for running the demo server."""

import uvicorn

from oidcgate.config import get_settings
from oidcgate.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("Starting demo server", host=settings.server_host, port=settings.server_port)

    uvicorn.run(
        "oidcgate.server:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
        log_config=None,  # Use our structlog configuration
        access_log=False,
    )


if __name__ == "__main__":
    main()
