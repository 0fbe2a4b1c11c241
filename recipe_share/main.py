import logging

import uvicorn

from .config import configure_logging, load_settings

logger = logging.getLogger(__name__)


def main():
    settings = load_settings()
    configure_logging(settings)

    logger.info("Settings loaded; serving on %s:%s", settings.host, settings.port)

    # the factory loads settings again inside the server process
    uvicorn.run(
        "recipe_share.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
