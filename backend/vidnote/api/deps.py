from starlette.requests import HTTPConnection

from vidnote.websocket.manager import RoomRegistry


def get_registry(connection: HTTPConnection) -> RoomRegistry:
    """Room registry owned by the running app (works for HTTP and WebSocket routes)."""
    return connection.app.state.registry
