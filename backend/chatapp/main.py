"""chatapp Backend Application.

This is the main entry point for the chatapp backend service: direct
messaging between two users with realtime presence, typing indicators,
delivery/read status, reactions and edits.

Modules:
    - presence: who is online, on which connection
    - realtime: WebSocket endpoint, connection lifecycle, typing relay
    - messages: DuckDB message store, delivery pipeline, REST endpoints
    - auth: caller identity for REST endpoints
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from chatapp import __version__
from chatapp.config import get_config
from chatapp.messages import MessageService, MessageStore, set_message_service
from chatapp.messages import router as messages_router
from chatapp.presence import InMemoryPresenceRegistry
from chatapp.realtime import (
    ConnectionHub,
    ConnectionLifecycle,
    TypingCoordinator,
    set_lifecycle,
)
from chatapp.realtime import router as realtime_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Access lines and client-library connection chatter drown out the app logs.
for _noisy in ("uvicorn.access", "websockets", "httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    registry = InMemoryPresenceRegistry()
    hub = ConnectionHub(registry, send_timeout=config.realtime.send_timeout_seconds)
    typing = TypingCoordinator(hub, ttl=config.realtime.typing_ttl_seconds)
    store = MessageStore(config.database.path)

    set_lifecycle(ConnectionLifecycle(hub, registry, typing))
    set_message_service(MessageService(store, hub))
    logger.info(
        f"Realtime ready (typing_ttl={config.realtime.typing_ttl_seconds}s), "
        f"message store at {config.database.path}"
    )

    yield  # Application runs here

    # Shutdown
    typing.shutdown()
    set_message_service(None)
    set_lifecycle(None)
    store.close()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="chatapp API",
    description="Direct messaging backend with realtime presence and delivery status",
    version=__version__,
    lifespan=lifespan,
)

# Register all routers
app.include_router(realtime_router)
app.include_router(messages_router)


@app.get("/")
async def root() -> dict:
    return {"message": "Chat App Backend Server is running!"}


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
