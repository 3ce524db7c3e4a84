"""
Server-Sent Events stream of slot changes for the dashboard.
"""

from collections.abc import AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from app.services.slots.broadcast_hub import BroadcastHub, broadcast_hub

router = APIRouter(tags=["events"])

KEEPALIVE_SECONDS = 15.0


async def event_stream(
    request: Request,
    hub: BroadcastHub = broadcast_hub,
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    # Registered on first iteration; an unstarted stream holds no observer
    observer = hub.connect()
    try:
        yield ": connected\n\n"
        while not await request.is_disconnected():
            message = await observer.next(timeout=keepalive)
            if observer.closed:
                break
            if message is None:
                yield ": keep-alive\n\n"
                continue
            yield message.to_sse()
    finally:
        hub.disconnect(observer)


@router.get("/events")
async def events(request: Request):
    return StreamingResponse(
        event_stream(request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )
