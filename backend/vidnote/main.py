"""
VidNote relay: FastAPI entry point.

Serves the real-time comment relay on /ws: clients join a video room and
new-comment / typing notifications fan out to everyone else watching the same
video. Comments themselves are persisted by the client against the hosted
database before (or after) they are announced here.
"""

import logging

from fastapi import Depends, FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vidnote.api import health
from vidnote.api.deps import get_registry
from vidnote.config import Settings, settings
from vidnote.websocket.handlers import relay_ws_handler
from vidnote.websocket.manager import RoomRegistry

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(config: Settings | None = None) -> FastAPI:
    config = config or settings

    app = FastAPI(
        title="vidnote-relay",
        description="Real-time comment relay for VidNote practice videos",
        version="1.0.0",
        debug=config.DEBUG,
    )
    # Owned by this app instance; a fresh app starts with no rooms.
    app.state.registry = RoomRegistry()
    app.state.settings = config

    # -----------------------------------------------------------------------
    # CORS
    # -----------------------------------------------------------------------
    # allow_origins=["*"] is incompatible with allow_credentials=True in the
    # CORS spec. When the wildcard is present (dev), switch to
    # allow_origin_regex=".*" which achieves the same effect without
    # triggering Starlette's guard.
    cors_origins = [o for o in config.CORS_ORIGINS if o != "*"]
    cors_regex = ".*" if len(cors_origins) < len(config.CORS_ORIGINS) else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_origin_regex=cors_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(health.router)

    # -----------------------------------------------------------------------
    # WebSocket endpoint
    # -----------------------------------------------------------------------

    @app.websocket(config.WS_PATH)
    async def relay_websocket_endpoint(
        websocket: WebSocket,
        registry: RoomRegistry = Depends(get_registry),
    ) -> None:
        await relay_ws_handler(websocket, registry)

    # -----------------------------------------------------------------------
    # Custom exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    logger.info("Relay endpoint mounted at %s", config.WS_PATH)
    return app


app = create_app()
