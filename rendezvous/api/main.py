from contextlib import asynccontextmanager
from typing import AsyncGenerator, List, Optional

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from rendezvous.config import settings
from rendezvous.jobs import create_scheduler
from rendezvous.models.like import LikeResult, LikeStatus
from rendezvous.models.match import MatchSummary
from rendezvous.models.message import Message, MessageType
from rendezvous.realtime import get_change_feed
from rendezvous.services import like_service, match_service, message_service
from rendezvous.services.moderation_service import get_block_status
from rendezvous.utils.cache import RedisClient
from rendezvous.utils.database import init_database, run_query
from rendezvous.utils.errors import AlreadyLikedError, BlockedError, RendezvousError
from rendezvous.utils.logging import get_logger, viewer_context

logger = get_logger(__name__)

# Initialize Sentry if DSN is provided
if settings.SENTRY_DSN:
    logger.info("Initializing Sentry...")
    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            traces_sample_rate=1.0 if settings.ENVIRONMENT == "development" else 0.1,
            integrations=[
                FastApiIntegration(transaction_style="url"),
                SqlalchemyIntegration(),
                RedisIntegration(),
                AsyncioIntegration(),
            ],
        )
        logger.info("Sentry initialized")
    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))

# Global job scheduler
scheduler = create_scheduler()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan."""
    # Startup
    logger.info("Starting API and background jobs...")

    # Initialize database
    try:
        init_database()
    except Exception as e:
        error_details = {}
        if hasattr(e, "details"):
            error_details = e.details
        logger.error("Failed to initialize database", error=str(e), details=error_details)
        raise

    scheduler.start()

    yield

    # Shutdown
    logger.info("Shutting down API and background jobs...")
    await scheduler.stop()
    await get_change_feed().close()
    await RedisClient.close()


app = FastAPI(
    title=settings.APP_NAME,
    description="Rendezvous match and conversation API",
    version="1.0.0",
    lifespan=lifespan,
)


class LikeRequest(BaseModel):
    sender_id: str
    receiver_id: str


class LikeResponse(LikeResult):
    already_liked: bool = False


class MessageRequest(BaseModel):
    sender_id: str
    content: str
    type: MessageType = MessageType.TEXT


class ReadRequest(BaseModel):
    viewer_id: str


class UnreadResponse(BaseModel):
    total: int
    per_match: dict[str, int]


@app.exception_handler(RendezvousError)
async def rendezvous_error_handler(request: Request, exc: RendezvousError) -> JSONResponse:
    """Render domain errors with their own status code."""
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message, details=exc.details)
    else:
        logger.info("Request rejected", path=request.url.path, error=exc.message, status_code=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.__class__.__name__, "message": exc.message, "details": exc.details},
    )


@app.post("/likes", response_model=LikeResponse)
async def create_like(body: LikeRequest) -> LikeResponse:
    """Like a profile. Liking twice is reported, not rejected."""
    with viewer_context(body.sender_id):
        try:
            result = await like_service.send_like(body.sender_id, body.receiver_id)
        except AlreadyLikedError:
            status = await like_service.check_like_status(body.sender_id, body.receiver_id)
            return LikeResponse(matched=status.matched, already_liked=True)
        return LikeResponse(matched=result.matched, match=result.match)


@app.delete("/likes", status_code=204)
async def delete_like(sender_id: str, receiver_id: str) -> None:
    await like_service.remove_like(sender_id, receiver_id)


@app.get("/likes/status", response_model=LikeStatus)
async def like_status(viewer_id: str, other_id: str) -> LikeStatus:
    return await like_service.check_like_status(viewer_id, other_id)


@app.get("/profiles/{profile_id}/matches", response_model=List[MatchSummary])
async def profile_matches(profile_id: str) -> List[MatchSummary]:
    return await match_service.list_matches(profile_id)


@app.get("/profiles/{profile_id}/unread", response_model=UnreadResponse)
async def profile_unread(profile_id: str) -> UnreadResponse:
    per_match = await message_service.get_unread_per_match(profile_id)
    return UnreadResponse(total=sum(per_match.values()), per_match=per_match)


@app.get("/matches/{match_id}/messages", response_model=List[Message])
async def match_messages(match_id: str, viewer_id: Optional[str] = None) -> List[Message]:
    """Messages of a match, oldest first. Reading as a participant marks them read."""
    await message_service.purge_expired(match_id)
    if viewer_id is not None:
        await message_service.mark_messages_as_read(match_id, viewer_id)
    return await message_service.get_messages(match_id)


@app.post("/matches/{match_id}/messages", response_model=Message, status_code=201)
async def post_message(match_id: str, body: MessageRequest) -> Message:
    with viewer_context(body.sender_id, match_id=match_id):
        match = await match_service.get_match(match_id)
        if match.has_participant(body.sender_id):
            status = await get_block_status(body.sender_id, match.other_participant(body.sender_id))
            if status.is_blocked:
                raise BlockedError("Messaging is blocked between these profiles", details={"match_id": match_id})
        return await message_service.send_message(match_id, body.sender_id, body.content, body.type)


@app.post("/matches/{match_id}/read", response_model=List[Message])
async def mark_read(match_id: str, body: ReadRequest) -> List[Message]:
    with viewer_context(body.viewer_id, match_id=match_id):
        return await message_service.mark_messages_as_read(match_id, body.viewer_id)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    try:
        await run_query(table="profiles", query_type="count")
        database_ok = True
    except RendezvousError as e:
        logger.warning("Health check database probe failed", error=e.message)
        database_ok = False

    is_healthy = database_ok and scheduler.is_running
    return JSONResponse(
        status_code=200 if is_healthy else 503,
        content={
            "status": "ok" if is_healthy else "error",
            "database": database_ok,
            "jobs_running": scheduler.is_running,
            "app": settings.APP_NAME,
            "environment": settings.ENVIRONMENT,
        },
    )


@app.get("/")
async def root() -> JSONResponse:
    """Root endpoint."""
    return JSONResponse(
        content={
            "message": "Rendezvous API is running",
            "docs_url": "/docs",
        }
    )
