"""Event Stream — SSE feed of outbound events (matches, dead letters, drains, connectivity).

Invariants:
    - One event-bus subscription per connected client, cancelled on disconnect
    - Every frame is `data: <json>\\n\\n` with the {"type", "data"} envelope
    - A keepalive comment is sent when no event arrives within the heartbeat interval

Design Decisions:
    - StreamingResponse for SSE: event_generator yields formatted SSE lines
    - Subscribe before returning the response: events published while the client
      finishes its handshake are not lost
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from matchsync.runtime import MatchSyncRuntime, get_runtime

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/events", tags=["events"])

# SSE headers prevent proxy/browser buffering of streamed events.
_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}
_HEARTBEAT_SECONDS = 15.0


@router.get("")
async def stream_events(rt: MatchSyncRuntime = Depends(get_runtime)):
    subscription = rt.events.subscribe()

    async def event_generator():
        try:
            while True:
                try:
                    event = await asyncio.wait_for(subscription.get(), _HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if event is None:
                    return
                yield _sse_line(event.to_sse_event())
        except asyncio.CancelledError:
            logger.info("Client disconnected from event stream")
            raise
        finally:
            subscription.cancel()

    return StreamingResponse(
        event_generator(), media_type="text/event-stream", headers=_SSE_HEADERS,
    )


def _sse_line(event: dict) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"
