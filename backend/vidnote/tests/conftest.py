"""
Pytest fixtures shared across all test modules.
Every test gets its own app instance, so room state never leaks between tests.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from vidnote.config import Settings
from vidnote.main import create_app
from vidnote.websocket.manager import RoomRegistry


@pytest.fixture()
def app() -> FastAPI:
    return create_app(Settings(CORS_ORIGINS=["*"]))


@pytest.fixture()
def registry(app: FastAPI) -> RoomRegistry:
    return app.state.registry


@pytest.fixture()
def client(app: FastAPI):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def anyio_backend():
    return "asyncio"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def join(ws, video_id, user_id=1) -> dict:
    """Send join and return the server's acknowledgment."""
    ws.send_json({"type": "join", "videoId": video_id, "userId": user_id})
    ack = ws.receive_json()
    assert ack["type"] == "joined", ack
    return ack


def assert_nothing_pending(ws, video_id, user_id=1) -> None:
    """Prove no frame is queued for ``ws``.

    Re-joining the current room is idempotent and acknowledged; if the next
    frame the socket reads is that acknowledgment, nothing was waiting ahead
    of it.
    """
    ws.send_json({"type": "join", "videoId": video_id, "userId": user_id})
    frame = ws.receive_json()
    assert frame == {"type": "joined", "videoId": video_id}, f"unexpected frame {frame!r}"
