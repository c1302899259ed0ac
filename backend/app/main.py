"""Messenger Backend Application.

Entry point for the messenger backend: REST endpoints for users, rooms and
messages plus the real-time WebSocket channel.

Modules:
    - realtime: WebSocket sessions, room broadcast, presence fan-out,
      delivery/read receipts
    - presence: per-user connection sets (Redis or in-process)
    - rooms: conversations and the membership index
    - messages: send path, moderation and translation stubs
    - users: profiles, search and last-known status
    - admin: bans, moderation review queue, stats
    - auth: JWT bearer verification
    - storage: DuckDB persistence
    - tasks: bounded background jobs
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.admin import AdminService
from app.admin.router import router as admin_router
from app.auth.service import TokenService
from app.config import AppConfig, get_config
from app.errors import AppError
from app.messages import MessageRepository, MessageService
from app.messages.moderation import ModerationQueue, ModerationService
from app.messages.router import router as messages_router
from app.messages.translation import TranslationService
from app.presence import InMemoryPresenceBackend, PresenceBackend, PresenceStore, RedisPresenceBackend
from app.realtime import RealtimeHub
from app.realtime.router import router as realtime_router
from app.rooms import RoomMembershipIndex, RoomService
from app.rooms.router import router as rooms_router
from app.storage import Database
from app.tasks import BackgroundTaskQueue
from app.users.repository import UserRepository
from app.users.router import router as users_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence per-request connection chatter.
for _noisy in ("httpx", "httpcore", "websockets", "redis"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def _build_presence_backend(config: AppConfig) -> PresenceBackend:
    if config.presence.backend == "memory":
        logger.info("Presence backend: in-process (single instance only)")
        return InMemoryPresenceBackend()
    return RedisPresenceBackend.from_url(config.secrets.redis.url)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in messenger.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    db = Database(config.database.path)
    membership = RoomMembershipIndex(db)
    users = UserRepository(db)
    message_repo = MessageRepository(db)
    tasks = BackgroundTaskQueue(config.translation.max_concurrency)
    tokens = TokenService.from_config(config)
    review_queue = ModerationQueue(db)

    hub = RealtimeHub(
        tokens=tokens,
        membership=membership,
        presence=PresenceStore(_build_presence_backend(config)),
        users=users,
        messages=message_repo,
        tasks=tasks,
    )

    app.state.config = config
    app.state.db = db
    app.state.token_service = tokens
    app.state.users = users
    app.state.rooms = RoomService(db, membership)
    app.state.messages = MessageService(
        messages=message_repo,
        membership=membership,
        moderation=ModerationService(config.moderation),
        review_queue=review_queue,
        translation=TranslationService(config.translation),
        tasks=tasks,
        settings=config.messages,
    )
    app.state.hub = hub
    app.state.admin = AdminService(db, users, message_repo, review_queue, hub)
    logger.info(
        "Messenger backend ready on http://%s:%s", config.server.host, config.server.port
    )

    yield  # Application runs here

    # Shutdown
    await hub.shutdown()
    db.close()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Messenger API",
    description="Real-time chat backend: rooms, messages, presence and receipts",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


# Register all routers
app.include_router(users_router)
app.include_router(rooms_router)
app.include_router(messages_router)
app.include_router(realtime_router)
app.include_router(admin_router)


@app.get("/health")
async def health(request: Request) -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object and the number of open WebSocket connections.
    """
    return {"status": "ok", "connections": request.app.state.hub.connection_count()}


def serve() -> None:
    """Run the server with the configured host, port and heartbeat window."""
    config = get_config()
    uvicorn.run(
        "app.main:app",
        host=config.server.host,
        port=config.server.port,
        ws_ping_interval=config.server.ws_ping_interval,
        ws_ping_timeout=config.server.ws_ping_timeout,
    )


if __name__ == "__main__":
    serve()
