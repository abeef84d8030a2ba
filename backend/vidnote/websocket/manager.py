import json
import logging
import uuid
from collections import defaultdict
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

VideoId = int | str


class RelayConnection:
    """One accepted /ws socket plus the room it has joined (at most one).

    Hashes by identity so the same object can sit in a room set.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.connection_id = uuid.uuid4().hex[:12]
        self.user_id: int | str | None = None
        self.video_id: VideoId | None = None

    @property
    def is_open(self) -> bool:
        return self.websocket.client_state == WebSocketState.CONNECTED

    async def send(self, payload: dict[str, Any]) -> None:
        await self.websocket.send_text(json.dumps(payload))

    def __repr__(self) -> str:
        return f"<RelayConnection {self.connection_id} user={self.user_id} video={self.video_id}>"


class RoomRegistry:
    """Maps a video id to the connections currently watching it.

    Rooms are created on first join and pruned when their last member leaves.
    State lives only for the process lifetime; a restart drops every room and
    clients must rejoin. All mutation happens on the event-loop thread, so no
    locking is needed in a single-worker deployment.
    """

    def __init__(self) -> None:
        # video_id -> {RelayConnection}
        self._rooms: dict[VideoId, set[RelayConnection]] = defaultdict(set)

    def add_to_room(self, video_id: VideoId, connection: RelayConnection) -> None:
        """Idempotent: adding a member twice leaves a single entry."""
        self._rooms[video_id].add(connection)
        logger.info(
            "Connection %s joined video room %s (%d member(s))",
            connection.connection_id,
            video_id,
            len(self._rooms[video_id]),
        )

    def remove_from_room(self, video_id: VideoId, connection: RelayConnection) -> None:
        members = self._rooms.get(video_id)
        if members is None:
            return
        members.discard(connection)
        if not members:
            del self._rooms[video_id]
        logger.info("Connection %s left video room %s", connection.connection_id, video_id)

    async def broadcast(
        self,
        video_id: VideoId,
        payload: dict[str, Any],
        exclude: RelayConnection | None = None,
    ) -> int:
        """Best-effort fan-out of a JSON payload to a room.

        Write failures on individual sockets are swallowed; the failing member
        is dropped from the room and its socket closed. Returns the number of
        successful writes.
        """
        data = json.dumps(payload)
        dead: list[RelayConnection] = []
        delivered = 0
        for conn in list(self._rooms.get(video_id, ())):
            if conn is exclude:
                continue
            if not conn.is_open:
                dead.append(conn)
                continue
            try:
                await conn.websocket.send_text(data)
                delivered += 1
            except Exception as exc:
                logger.warning("Dropping connection %s from video room %s: %s", conn.connection_id, video_id, exc)
                dead.append(conn)
        for conn in dead:
            await self._evict(video_id, conn)
        return delivered

    async def _evict(self, video_id: VideoId, connection: RelayConnection) -> None:
        # An evicted connection is joined nowhere; the close makes its client
        # reconnect and rejoin.
        self.remove_from_room(video_id, connection)
        if connection.video_id == video_id:
            connection.video_id = None
        try:
            await connection.websocket.close(code=1011)
        except Exception as exc:
            logger.debug("Error closing evicted connection %s: %s", connection.connection_id, exc)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def room_size(self, video_id: VideoId) -> int:
        return len(self._rooms.get(video_id, ()))

    def is_member(self, video_id: VideoId, connection: RelayConnection) -> bool:
        return connection in self._rooms.get(video_id, ())

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def connection_count(self) -> int:
        seen: set[RelayConnection] = set()
        for members in self._rooms.values():
            seen.update(members)
        return len(seen)
