"""Match Routes — match state and countdown, read through the offline cache; expiry sweep."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from matchsync.core.domain_types import MATCHES, MatchState
from matchsync.core.errors import ErrorContext, ResourceNotFoundError
from matchsync.core.match_lifecycle import (
    format_time_remaining, match_state, time_remaining,
)
from matchsync.runtime import MatchSyncRuntime, get_runtime
from matchsync.schemas.actions import MatchStatusResponse

router = APIRouter(prefix="/api/v1/matches", tags=["matches"])


@router.get("/{match_id}/status", response_model=MatchStatusResponse)
async def get_match_status(match_id: str, rt: MatchSyncRuntime = Depends(get_runtime)):
    match = await rt.cache.fetch_with_offline_fallback(MATCHES, match_id)
    if match is None:
        raise ResourceNotFoundError("Match", match_id, ErrorContext(match_id=match_id))
    now = rt.clock.now()
    state = match_state(match, now)
    remaining = max(int(time_remaining(match, now).total_seconds()), 0)
    return MatchStatusResponse(
        match_id=match_id,
        state=state.value,
        is_expired=state != MatchState.ACTIVE,
        seconds_remaining=remaining if state == MatchState.ACTIVE else 0,
        time_remaining_label=format_time_remaining(match, now),
        expires_at=match.get("expiresAt"),
    )


@router.post("/expire/{user_id}")
async def expire_user_matches(user_id: str, rt: MatchSyncRuntime = Depends(get_runtime)):
    if not rt.monitor.is_online():
        return JSONResponse(
            status_code=409,
            content={"error": {
                "code": "OFFLINE",
                "message": "Cannot persist match expiry while offline",
                "category": "remote",
                "severity": "warning",
            }},
        )
    expired = await rt.lifecycle.expire_matches(user_id)
    return {"user_id": user_id, "expired": expired}
