"""Envelope parsing and serialization."""

import json

import pytest

from vidnote.schemas.envelope import (
    CommentBroadcast,
    JoinedEnvelope,
    JoinEnvelope,
    MalformedEnvelopeError,
    NewCommentEnvelope,
    TypingBroadcast,
    TypingEnvelope,
    UnknownEnvelopeError,
    parse_envelope,
)


def _raw(**fields) -> str:
    return json.dumps(fields)


class TestParseEnvelope:
    def test_join(self):
        env = parse_envelope(_raw(type="join", videoId=42, userId=7))
        assert isinstance(env, JoinEnvelope)
        assert env.video_id == 42
        assert env.user_id == 7

    def test_new_comment_keeps_comment_verbatim(self):
        comment = {"id": 1, "content": "nice tone", "timestamp": 12.5, "user": {"id": 3}}
        env = parse_envelope(_raw(type="new_comment", videoId=42, comment=comment))
        assert isinstance(env, NewCommentEnvelope)
        assert env.comment == comment

    def test_typing(self):
        env = parse_envelope(_raw(type="typing", videoId=1, userId="u-5", isTyping=False))
        assert isinstance(env, TypingEnvelope)
        assert env.user_id == "u-5"
        assert env.is_typing is False

    def test_bytes_payload(self):
        env = parse_envelope(b'{"type": "join", "videoId": 3, "userId": 1}')
        assert isinstance(env, JoinEnvelope)

    @pytest.mark.parametrize(
        ("raw_id", "expected"),
        [(42, 42), ("42", 42), (" 42 ", 42), ("etude-op10", "etude-op10")],
    )
    def test_video_id_normalization(self, raw_id, expected):
        assert parse_envelope(_raw(type="join", videoId=raw_id, userId=1)).video_id == expected

    @pytest.mark.parametrize("raw_id", [0, -3, "", "   ", True, None, 4.2, [42]])
    def test_invalid_video_id(self, raw_id):
        with pytest.raises(MalformedEnvelopeError):
            parse_envelope(_raw(type="join", videoId=raw_id, userId=1))

    @pytest.mark.parametrize("raw", ["{not json", "", "[1, 2]", '"join"', "null"])
    def test_not_a_json_object(self, raw):
        with pytest.raises(MalformedEnvelopeError):
            parse_envelope(raw)

    def test_missing_type(self):
        with pytest.raises(MalformedEnvelopeError):
            parse_envelope(_raw(videoId=42, userId=1))

    def test_missing_fields(self):
        with pytest.raises(MalformedEnvelopeError):
            parse_envelope(_raw(type="new_comment", videoId=42))

    def test_unknown_type(self):
        with pytest.raises(UnknownEnvelopeError) as exc_info:
            parse_envelope(_raw(type="reaction", videoId=42))
        assert exc_info.value.envelope_type == "reaction"

    def test_server_only_type_is_unknown_inbound(self):
        with pytest.raises(UnknownEnvelopeError):
            parse_envelope(_raw(type="joined", videoId=42))


class TestWireFormat:
    def test_joined(self):
        assert JoinedEnvelope(video_id=42).to_wire() == {"type": "joined", "videoId": 42}

    def test_comment_broadcast_omits_video_id(self):
        assert CommentBroadcast(comment={"id": 1}).to_wire() == {"type": "new_comment", "comment": {"id": 1}}

    def test_typing_broadcast(self):
        assert TypingBroadcast(user_id=5, is_typing=True).to_wire() == {
            "type": "typing",
            "userId": 5,
            "isTyping": True,
        }

    def test_client_envelopes_use_camel_case(self):
        assert TypingEnvelope(video_id="7", user_id=1, is_typing=True).to_wire() == {
            "type": "typing",
            "videoId": 7,
            "userId": 1,
            "isTyping": True,
        }
