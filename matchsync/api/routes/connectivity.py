"""Connectivity Routes — the UI shell reports network state; clients read it back."""

from fastapi import APIRouter, Depends

from matchsync.runtime import MatchSyncRuntime, get_runtime
from matchsync.schemas.actions import ConnectivityUpdate

router = APIRouter(prefix="/api/v1/connectivity", tags=["connectivity"])


@router.get("")
async def get_connectivity(rt: MatchSyncRuntime = Depends(get_runtime)):
    return {"online": rt.monitor.is_online(), "sync_in_progress": rt.monitor.sync_in_progress}


@router.post("")
async def set_connectivity(body: ConnectivityUpdate, rt: MatchSyncRuntime = Depends(get_runtime)):
    changed = rt.monitor.set_online(body.online)
    return {"online": rt.monitor.is_online(), "changed": changed}
