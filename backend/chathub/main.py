"""Chat Hub Backend Application.

This is the main entry point for the chat hub service: a real-time,
multi-room messaging server. Clients connect over a WebSocket, join rooms,
exchange messages, reactions, typing signals and read receipts.

Modules:
    - chat: hub state, event dispatch, WebSocket endpoint and HTTP dumps
    - files: attachment upload side-channel
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from chathub.chat.hub import ChatHub, get_hub, set_hub
from chathub.chat.router import router as chat_router
from chathub.config import get_config
from chathub.files.router import router as files_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    config = get_config()

    # Apply configured log level to the root logger so that
    # `logging.level: "debug"` in chathub.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    set_hub(ChatHub.from_settings(config.chat))
    logger.info(
        f"Chat hub ready on http://{config.server.host}:{config.server.port} "
        f"(default room: {get_hub().default_room})"
    )

    yield  # Application runs here

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with routers and CORS."""
    application = FastAPI(
        title="Chat Hub API",
        description="Real-time multi-room chat over WebSockets",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=get_config().server.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    application.include_router(chat_router)
    application.include_router(files_router)

    @application.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "Chat hub server is running"

    @application.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "chathub.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )
