"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from roundhouse.api.auctions import router as auctions_router
from roundhouse.api.events import open_streams
from roundhouse.api.events import router as events_router
from roundhouse.api.games import router as games_router
from roundhouse.api.ladders import router as ladders_router
from roundhouse.config import Settings
from roundhouse.core.arcade import Arcade
from roundhouse.core.errors import (
    InsufficientFunds,
    InvalidSelection,
    LedgerTimeout,
    UnknownGame,
    WagerError,
)
from roundhouse.core.event_bus import EventBus

logger = logging.getLogger(__name__)

# Most specific first; WagerError catches anything not listed.
_ERROR_STATUS: tuple[tuple[type[Exception], int], ...] = (
    (UnknownGame, 404),
    (InvalidSelection, 422),
    (InsufficientFunds, 402),
    (LedgerTimeout, 504),
    (WagerError, 500),
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: start the round clock and auction bidders. Shutdown: drain settlements."""
    settings: Settings = app.state.settings
    arcade: Arcade = app.state.arcade
    arcade.start(
        auto_tick=settings.roundhouse_auto_tick,
        auction_bot=settings.roundhouse_auction_bot_enabled,
    )
    if settings.roundhouse_auto_tick:
        logger.info("clock_enabled interval=%.2fs", settings.roundhouse_tick_seconds)
    else:
        logger.info("clock_disabled")

    yield

    await arcade.stop()


async def _wager_error_handler(request: Request, exc: Exception) -> JSONResponse:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        status_code = 500
    logger.info(
        "request_rejected path=%s status=%d error=%s",
        request.url.path,
        status_code,
        type(exc).__name__,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


def create_app(settings: Settings | None = None, arcade: Arcade | None = None) -> FastAPI:
    """Create and configure the Roundhouse FastAPI application."""
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.roundhouse_log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Roundhouse",
        version="0.1.0",
        description="Timed betting rounds, ladders and unique-bid auctions over a shared ledger",
        docs_url="/docs" if settings.roundhouse_env != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    if arcade is None:
        arcade = Arcade.from_settings(settings, EventBus())
    app.state.arcade = arcade
    app.state.event_bus = arcade.event_bus or EventBus()

    app.add_exception_handler(UnknownGame, _wager_error_handler)
    app.add_exception_handler(WagerError, _wager_error_handler)

    app.include_router(games_router)
    app.include_router(ladders_router)
    app.include_router(auctions_router)
    app.include_router(events_router)

    @app.get("/health")
    async def health() -> dict[str, str | int]:
        return {
            "status": "ok",
            "env": settings.roundhouse_env,
            "games": len(arcade.definitions),
            "ticks": arcade.clock.ticks,
            "event_streams": open_streams(),
            "subscribers": app.state.event_bus.subscriber_count,
        }

    return app


app = create_app()
