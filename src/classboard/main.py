"""FastAPI application entrypoint for Classboard."""

import logging

from fastapi import FastAPI

from .api.v1.router import api_router
from .core.cache import LeaderboardCache
from .core.config import get_settings
from .core.events import LeaderboardBroker
from .jobs import register_scheduler

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Instantiate and configure the FastAPI application."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Classboard API", version="0.1.0")
    app.state.leaderboard_cache = LeaderboardCache(default_ttl=settings.leaderboard_cache_ttl_seconds)
    app.state.leaderboard_broker = LeaderboardBroker()
    app.include_router(api_router, prefix="/api/v1")
    register_scheduler(app)

    @app.on_event("shutdown")
    async def close_live_updates() -> None:
        app.state.leaderboard_broker.close()
        app.state.leaderboard_cache.clear()
        logger.info("live update channel closed")

    return app


app = create_app()
