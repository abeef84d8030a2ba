import logging

from fastapi import WebSocket, WebSocketDisconnect

from vidnote.schemas.envelope import (
    CommentBroadcast,
    InboundEnvelope,
    JoinedEnvelope,
    JoinEnvelope,
    MalformedEnvelopeError,
    NewCommentEnvelope,
    TypingBroadcast,
    TypingEnvelope,
    UnknownEnvelopeError,
    parse_envelope,
)
from vidnote.websocket.manager import RelayConnection, RoomRegistry

logger = logging.getLogger(__name__)


async def _handle_join(conn: RelayConnection, registry: RoomRegistry, envelope: JoinEnvelope) -> None:
    # A connection watches one video at a time; joining another moves it.
    if conn.video_id is not None and conn.video_id != envelope.video_id:
        registry.remove_from_room(conn.video_id, conn)

    conn.video_id = envelope.video_id
    conn.user_id = envelope.user_id
    registry.add_to_room(envelope.video_id, conn)
    await conn.send(JoinedEnvelope(video_id=envelope.video_id).to_wire())


def _is_member(conn: RelayConnection, registry: RoomRegistry, envelope: NewCommentEnvelope | TypingEnvelope) -> bool:
    if conn.video_id == envelope.video_id and registry.is_member(envelope.video_id, conn):
        return True
    logger.warning(
        "Connection %s sent %r for video room %s without joining it, dropped",
        conn.connection_id,
        envelope.type,
        envelope.video_id,
    )
    return False


async def _dispatch(conn: RelayConnection, registry: RoomRegistry, envelope: InboundEnvelope) -> None:
    if isinstance(envelope, JoinEnvelope):
        await _handle_join(conn, registry, envelope)

    elif isinstance(envelope, NewCommentEnvelope):
        if _is_member(conn, registry, envelope):
            await registry.broadcast(
                envelope.video_id,
                CommentBroadcast(comment=envelope.comment).to_wire(),
                exclude=conn,
            )

    elif isinstance(envelope, TypingEnvelope):
        if _is_member(conn, registry, envelope):
            await registry.broadcast(
                envelope.video_id,
                TypingBroadcast(user_id=envelope.user_id, is_typing=envelope.is_typing).to_wire(),
                exclude=conn,
            )


async def relay_ws_handler(websocket: WebSocket, registry: RoomRegistry) -> None:
    """Full lifecycle handler for a /ws relay connection.

    Connected -> (join) -> Joined -> (close) -> Closed. Bad frames are logged
    and dropped without closing the socket; nothing is sent back for them.
    """
    await websocket.accept()
    conn = RelayConnection(websocket)
    logger.info("WebSocket connection %s opened", conn.connection_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # Binary frames go through the same JSON parser as text frames
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            try:
                envelope = parse_envelope(raw)
            except UnknownEnvelopeError as exc:
                logger.warning("Connection %s sent unknown envelope type %r", conn.connection_id, exc.envelope_type)
                continue
            except MalformedEnvelopeError as exc:
                logger.warning("Connection %s sent malformed envelope: %s", conn.connection_id, exc)
                continue

            logger.debug("Connection %s -> %s", conn.connection_id, envelope.type)
            try:
                await _dispatch(conn, registry, envelope)
            except WebSocketDisconnect:
                raise
            except Exception as exc:
                logger.error(
                    "Error handling envelope %r from connection %s: %s",
                    envelope.type,
                    conn.connection_id,
                    exc,
                    exc_info=True,
                )

    except WebSocketDisconnect:
        logger.info("WebSocket connection %s closed", conn.connection_id)
    except Exception as exc:
        logger.warning("WebSocket connection %s failed: %s", conn.connection_id, exc)
    finally:
        if conn.video_id is not None:
            registry.remove_from_room(conn.video_id, conn)
