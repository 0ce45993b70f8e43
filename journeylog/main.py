import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from journeylog.config import settings
from journeylog.database.connection import (
    close_mongo_connection,
    connect_to_mongo,
    get_database,
    mongo_db_dependency,
)
from journeylog.errors import InvalidCursorError, NotFoundError, TransientIOError
from journeylog.repositories.chat_repository import ChatRepository
from journeylog.repositories.journey_repository import JourneyRepository
from journeylog.routers.conversations import router as conversations_router
from journeylog.routers.journeys import router as journeys_router
from journeylog.routers.sessions import router as sessions_router
from journeylog.services.sessions import sessions
from journeylog.utils.realtime_bus import close_bus, get_bus

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    await connect_to_mongo()
    db = get_database()
    await JourneyRepository(db).ensure_indexes()
    await ChatRepository(db).ensure_indexes()
    await get_bus()
    sweeper = asyncio.create_task(sessions.run_sweeper(settings.session_sweep_seconds))
    try:
        yield
    finally:
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)
        await sessions.close_all()
        await close_bus()
        await close_mongo_connection()


app = FastAPI(title="journeylog", lifespan=lifespan)


app.include_router(journeys_router)
app.include_router(conversations_router)
app.include_router(sessions_router)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(TransientIOError)
async def transient_io_handler(request: Request, exc: TransientIOError):
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc), "retryable": exc.retryable})


@app.exception_handler(InvalidCursorError)
async def invalid_cursor_handler(request: Request, exc: InvalidCursorError):
    logger.error("Cursor misuse on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.get("/health")
async def health(db=Depends(mongo_db_dependency)):
    try:
        await db.command("ping")
    except PyMongoError as exc:
        raise TransientIOError(f"MongoDB ping failed: {exc}") from exc
    return {"status": "ok"}
