"""Process entry point: settings, logging and the uvicorn server."""

import logging
from typing import Optional, Sequence

import uvicorn

from .app import create_app
from .config import Settings, load_settings
from .logger import configure_logging

logger = logging.getLogger(__name__)


def build_app(settings: Optional[Settings] = None):
    """Application for an external runtime that imports rather than runs us."""
    if settings is None:
        settings = load_settings([])
    configure_logging(settings.log_level)
    return create_app(settings)


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = load_settings(argv)
    configure_logging(settings.log_level)

    if settings.hosted:
        logger.info("Hosted runtime detected; the platform serves the exported app")
        return 0

    logger.info("Echo YTMusic proxy running on http://%s:%d", settings.host, settings.port)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0
