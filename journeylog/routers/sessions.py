from fastapi import APIRouter, Depends

from journeylog.services.sessions import SessionRegistry
from journeylog.utils.dependencies import get_current_user_id, get_session_registry


router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.delete("/me")
async def end_session(
    user_id: str = Depends(get_current_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Drop the caller's cached profiles and read models (logout)."""
    ended = await registry.end(user_id)
    return {"ended": ended}
