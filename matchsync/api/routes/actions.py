"""Action Routes — record user intents; every endpoint answers 202 with the queued action.

Invariants:
    - 202 means durable locally, not applied remotely (outcomes arrive on /events)
    - Validation failures -> 400, expired match on a message -> 409, local storage -> 507
"""

from fastapi import APIRouter, Depends, status

from matchsync.runtime import MatchSyncRuntime, get_runtime
from matchsync.schemas.actions import (
    ActionResponse, BlockRequest, MatchCreate, MessageCreate, ProfileUpdate,
    ReportCreate, SwipeCreate, UnmatchRequest,
)

router = APIRouter(prefix="/api/v1/actions", tags=["actions"])


@router.post("/swipes", status_code=status.HTTP_202_ACCEPTED, response_model=ActionResponse)
async def record_swipe(body: SwipeCreate, rt: MatchSyncRuntime = Depends(get_runtime)):
    action = await rt.actions.enqueue_swipe(body.actor_id, body.target_id, body.direction)
    return ActionResponse.from_action(action)


@router.post(
    "/profile-updates", status_code=status.HTTP_202_ACCEPTED, response_model=ActionResponse,
)
async def update_profile(body: ProfileUpdate, rt: MatchSyncRuntime = Depends(get_runtime)):
    action = await rt.actions.enqueue_profile_update(body.user_id, body.partial)
    return ActionResponse.from_action(action)


@router.post("/messages", status_code=status.HTTP_202_ACCEPTED, response_model=ActionResponse)
async def send_message(body: MessageCreate, rt: MatchSyncRuntime = Depends(get_runtime)):
    action = await rt.actions.enqueue_message(body.match_id, body.sender_id, body.text)
    return ActionResponse.from_action(action)


@router.post("/reports", status_code=status.HTTP_202_ACCEPTED, response_model=ActionResponse)
async def report_user(body: ReportCreate, rt: MatchSyncRuntime = Depends(get_runtime)):
    action = await rt.actions.enqueue_report(
        body.reporter_id, body.reported_user_id, body.reason.value, body.details,
    )
    return ActionResponse.from_action(action)


@router.post("/matches", status_code=status.HTTP_202_ACCEPTED, response_model=ActionResponse)
async def create_match(body: MatchCreate, rt: MatchSyncRuntime = Depends(get_runtime)):
    action = await rt.actions.enqueue_create_match(body.user_a, body.user_b)
    return ActionResponse.from_action(action)


@router.post("/unmatch", status_code=status.HTTP_202_ACCEPTED, response_model=ActionResponse)
async def unmatch(body: UnmatchRequest, rt: MatchSyncRuntime = Depends(get_runtime)):
    action = await rt.actions.request_unmatch(body.match_id, body.by_user_id)
    return ActionResponse.from_action(action)


@router.post("/block", status_code=status.HTTP_202_ACCEPTED, response_model=ActionResponse)
async def block_user(body: BlockRequest, rt: MatchSyncRuntime = Depends(get_runtime)):
    action = await rt.actions.request_block(body.by_user_id, body.target_id)
    return ActionResponse.from_action(action)
