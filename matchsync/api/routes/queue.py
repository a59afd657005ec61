"""Queue Routes — inspect pending and dead-lettered actions, trigger a drain.

Invariants:
    - POST /queue/drain while offline returns 409 and touches nothing
    - A manual drain goes through the sync service, the same path as a reconnect
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from matchsync.runtime import MatchSyncRuntime, get_runtime
from matchsync.schemas.actions import ActionResponse, DeadLetterResponse, QueueResponse

router = APIRouter(prefix="/api/v1/queue", tags=["queue"])


@router.get("", response_model=QueueResponse)
async def get_queue(rt: MatchSyncRuntime = Depends(get_runtime)):
    return QueueResponse(
        pending=[ActionResponse.from_action(a) for a in rt.queue.drainable()],
        dead_letters=[DeadLetterResponse.from_dead_letter(d) for d in rt.queue.dead_letters()],
        draining=rt.executor.draining,
    )


@router.post("/drain")
async def drain_queue(rt: MatchSyncRuntime = Depends(get_runtime)):
    if not rt.monitor.is_online():
        return JSONResponse(
            status_code=409,
            content={"error": {
                "code": "OFFLINE",
                "message": "Cannot drain while offline",
                "category": "remote",
                "severity": "warning",
            }},
        )
    report = await rt.sync.sync()
    return report.to_dict()
