"""Uvicorn runner for the simplenet API."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
import uvicorn

from simplenet.api.app import create_app

if TYPE_CHECKING:
    from simplenet.config import Settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def run_server(settings: Settings) -> None:
    """Serve the API on ``settings.api.host:port`` until interrupted.

    ``log_config=None`` keeps uvicorn from replacing the handlers installed
    by ``configure_logging``, so access and error lines share one format.
    """
    logger.info(
        "api_starting",
        host=settings.api.host,
        port=settings.api.port,
        relay_delay=settings.relay.delay_seconds,
        webhook_configured=settings.relay.webhook_url is not None,
    )
    uvicorn.run(
        create_app(settings),
        host=settings.api.host,
        port=settings.api.port,
        log_config=None,
        log_level=settings.logging.level.lower(),
    )
