"""Live event stream for game tables.

Clients follow the whole engine, or narrow the stream to one event type
and/or one table (``game_id``). Every frame carries the bus sequence number
as its SSE ``id`` so a reconnecting client can tell whether it missed events.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from roundhouse.api.deps import ArcadeDep
from roundhouse.core.event_bus import Envelope, EventBus

router = APIRouter(prefix="/api/events", tags=["events"])
logger = logging.getLogger(__name__)

_HEARTBEAT_INTERVAL = 15  # seconds

# Anonymous clients can hold streams open indefinitely, so the pool is capped.
_MAX_SSE_CONNECTIONS = 100
_open_streams = 0

# Every event type the engine publishes. Anything else is rejected with 400.
ALLOWED_EVENT_TYPES: frozenset[str] = frozenset(
    {
        # Rounds
        "round.phase",
        "round.results",
        # Wagers
        "wager.placed",
        "wager.outcome",
        "wager.declined",
        "wager.voided",
        "winner.announced",
        # Ledger
        "payout.lost",
        # Auctions
        "auction.bid",
        "auction.status",
    }
)


def open_streams() -> int:
    return _open_streams


def belongs_to(envelope: Envelope, game_id: str | None) -> bool:
    """Whether ``envelope`` goes out on a stream following ``game_id``.

    Engine-wide events such as ``payout.lost`` carry no table and only reach
    unfiltered streams.
    """
    if game_id is None:
        return True
    return envelope["data"].get("game_id") == game_id


def sse_frame(envelope: Envelope) -> str:
    data = json.dumps(envelope, default=str)
    return f"id: {envelope['seq']}\nevent: {envelope['type']}\ndata: {data}\n\n"


async def _frames(
    request: Request, bus: EventBus, event_type: str | None, game_id: str | None
) -> AsyncIterator[str]:
    global _open_streams
    _open_streams += 1
    logger.debug("sse_open event_type=%s game=%s open=%d", event_type, game_id, _open_streams)
    try:
        # Flush through proxies so the browser sees the stream as open.
        yield ": connected\n\n"
        async with bus.subscribe(event_type) as sub:
            while not await request.is_disconnected():
                event = await sub.get(timeout=_HEARTBEAT_INTERVAL)
                if event is None:
                    yield ": heartbeat\n\n"
                elif belongs_to(event, game_id):
                    yield sse_frame(event)
    finally:
        _open_streams -= 1


@router.get("/stream")
async def sse_stream(
    request: Request,
    arcade: ArcadeDep,
    event_type: str | None = None,
    game_id: str | None = None,
) -> StreamingResponse:
    """Server-Sent Events stream.

    Query params:
        event_type: only this event type (e.g. "wager.outcome").
        game_id: only events of this table (e.g. "coin_flip").

    Errors:
        400 unknown event_type
        404 unknown game_id
        429 connection limit reached
    """
    if event_type is not None and event_type not in ALLOWED_EVENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=(
                f"Unknown event_type {event_type!r}. "
                f"Valid values: {sorted(ALLOWED_EVENT_TYPES)}"
            ),
        )
    if game_id is not None:
        arcade.definition(game_id)

    if _open_streams >= _MAX_SSE_CONNECTIONS:
        raise HTTPException(
            status_code=429,
            detail=(
                f"Too many concurrent SSE connections "
                f"(limit: {_MAX_SSE_CONNECTIONS}). Try again later."
            ),
        )

    return StreamingResponse(
        _frames(request, request.app.state.event_bus, event_type, game_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
