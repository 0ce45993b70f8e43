from fastapi import APIRouter, Depends, HTTPException

from journeylog.errors import NotFoundError, TransientIOError
from journeylog.schemas.journey import DeleteResult, FeedTab, FeedView
from journeylog.services.feed_assembler import DELETE_FAILURE_MESSAGE
from journeylog.services.sessions import UserSession
from journeylog.utils.dependencies import get_user_session


router = APIRouter(prefix="/journeys", tags=["journeys"])


@router.post("/feed/{tab}/reset", response_model=FeedView)
async def reset_feed(tab: FeedTab, session: UserSession = Depends(get_user_session)):
    return await session.feed.load(tab, reset=True)


@router.post("/feed/{tab}/more", response_model=FeedView)
async def load_more(tab: FeedTab, session: UserSession = Depends(get_user_session)):
    return await session.feed.load(tab)


@router.get("/feed", response_model=FeedView)
async def current_feed(session: UserSession = Depends(get_user_session)):
    if not session.feed.loaded:
        raise HTTPException(status_code=404, detail="Feed has not been loaded yet.")
    return session.feed.view


@router.delete("/{entry_id}", response_model=DeleteResult)
async def delete_journey(entry_id: str, session: UserSession = Depends(get_user_session)):
    try:
        return await session.feed.delete(entry_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Journey update not found.")
    except TransientIOError:
        raise HTTPException(status_code=502, detail=DELETE_FAILURE_MESSAGE)
