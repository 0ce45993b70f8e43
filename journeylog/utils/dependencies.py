import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from journeylog.database.connection import mongo_db_dependency
from journeylog.repositories.chat_repository import ChatRepository
from journeylog.repositories.journey_repository import JourneyRepository
from journeylog.repositories.user_repository import UserRepository
from journeylog.services.sessions import SessionRegistry, UserSession, sessions
from journeylog.utils.realtime_bus import get_bus
from journeylog.utils.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> str:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return payload["sub"]


def get_session_registry() -> SessionRegistry:
    return sessions


def get_user_repository(db=Depends(mongo_db_dependency)) -> UserRepository:
    return UserRepository(db)


def get_journey_repository(db=Depends(mongo_db_dependency)) -> JourneyRepository:
    return JourneyRepository(db)


def get_chat_repository(db=Depends(mongo_db_dependency)) -> ChatRepository:
    return ChatRepository(db)


async def get_realtime_bus():
    return await get_bus()


async def get_user_session(
    user_id: str = Depends(get_current_user_id),
    registry: SessionRegistry = Depends(get_session_registry),
    user_repo: UserRepository = Depends(get_user_repository),
    journey_repo: JourneyRepository = Depends(get_journey_repository),
) -> UserSession:
    return await registry.get_or_create(user_id, user_repo, journey_repo)
