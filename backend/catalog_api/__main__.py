"""Launch the catalog API with Uvicorn using the configured bind address."""
import logging

import uvicorn

from .app import create_app
from .settings import CatalogSettings


def main() -> None:
    settings = CatalogSettings()
    logging.basicConfig(level=settings.log_level.upper())
    uvicorn.run(
        create_app(settings=settings),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
