from fastapi import APIRouter, Depends

from vidnote.api.deps import get_registry
from vidnote.websocket.manager import RoomRegistry

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(registry: RoomRegistry = Depends(get_registry)) -> dict:
    return {
        "status": "healthy",
        "rooms": registry.room_count,
        "connections": registry.connection_count,
    }
