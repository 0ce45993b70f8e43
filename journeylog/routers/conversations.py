import asyncio
import logging
from typing import Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from journeylog.errors import NotFoundError, StreamDisconnectedError
from journeylog.repositories.chat_repository import ChatRepository
from journeylog.repositories.journey_repository import JourneyRepository
from journeylog.repositories.user_repository import UserRepository
from journeylog.schemas.chat import InboxSnapshot, MessageAck, SendMessageRequest
from journeylog.services.chat_service import ChatService
from journeylog.services.inbox_reconciler import filter_by_username
from journeylog.services.sessions import SessionRegistry, UserSession
from journeylog.utils.dependencies import (
    get_chat_repository,
    get_current_user_id,
    get_journey_repository,
    get_realtime_bus,
    get_session_registry,
    get_user_repository,
    get_user_session,
)
from journeylog.utils.security import decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["chat"])


def get_chat_service(
    chat_repo: ChatRepository = Depends(get_chat_repository),
    bus=Depends(get_realtime_bus),
) -> ChatService:
    return ChatService(chat_repo, bus)


@router.get("", response_model=InboxSnapshot)
async def list_conversations(
    q: Optional[str] = None,
    session: UserSession = Depends(get_user_session),
    chat_repo: ChatRepository = Depends(get_chat_repository),
):
    records = await chat_repo.list_for_user(session.user_id)
    snapshot = await session.inbox().project(records)
    return filter_by_username(snapshot, q) if q else snapshot


@router.post("/{other_user_id}/messages", response_model=MessageAck)
async def send_message(
    other_user_id: str,
    body: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    try:
        return await service.send_message(user_id, other_user_id, body.text)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/{chat_id}/read")
async def mark_read(
    chat_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    try:
        count = await service.mark_read(chat_id, user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found.")
    return {"updated": count}


@router.websocket("/ws")
async def inbox_socket(
    websocket: WebSocket,
    registry: SessionRegistry = Depends(get_session_registry),
    user_repo: UserRepository = Depends(get_user_repository),
    journey_repo: JourneyRepository = Depends(get_journey_repository),
    chat_repo: ChatRepository = Depends(get_chat_repository),
    bus=Depends(get_realtime_bus),
):
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4401)
        return
    try:
        user_id = decode_access_token(token)["sub"]
    except jwt.InvalidTokenError:
        await websocket.close(code=4401)
        return

    await websocket.accept()
    session = await registry.get_or_create(user_id, user_repo, journey_repo)
    snapshots = session.watch_inbox(chat_repo.watch_for_user(user_id, bus))

    async def _send() -> None:
        try:
            async for snapshot in snapshots:
                await websocket.send_json({"type": "snapshot", **snapshot.model_dump(mode="json")})
        except StreamDisconnectedError as exc:
            logger.warning("Inbox stream for %s disconnected: %s", user_id, exc)
            await websocket.send_json({"type": "disconnected", "detail": str(exc)})
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        else:
            await websocket.close()

    async def _receive() -> None:
        # the inbox socket is push-only; incoming frames are read just to see the client leave
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug("Inbox socket for %s disconnected", user_id)
                return

    sender = asyncio.create_task(_send())
    receiver = asyncio.create_task(_receive())
    try:
        await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sender, receiver):
            task.cancel()
        for result in await asyncio.gather(sender, receiver, return_exceptions=True):
            if isinstance(result, Exception) and not isinstance(result, WebSocketDisconnect):
                logger.error("Inbox socket for %s failed: %r", user_id, result)
        await snapshots.aclose()
