"""Tests for broker event decoding and encoding."""

import json

import pytest

from chatsync.domain.entities.broker_event import (
    MemberProfileChanged,
    MessageCreated,
    MessageDeleted,
    MessageUpdated,
    dump_broker_event,
    parse_broker_event,
)
from chatsync.domain.entities.message import AuthorProfile, Message
from chatsync.domain.errors import MalformedEventError


def message_payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": "m1",
        "author_id": "u1",
        "channel_id": "c1",
        "content": "hello",
    }
    payload.update(overrides)
    return payload


class TestParseBrokerEvent:
    """Tests for parse_broker_event."""

    def test_created(self) -> None:
        event = parse_broker_event({"kind": "created", "message": message_payload()})

        assert isinstance(event, MessageCreated)
        assert event.message.id == "m1"

    def test_updated(self) -> None:
        event = parse_broker_event({"kind": "updated", "message": message_payload()})

        assert isinstance(event, MessageUpdated)

    def test_deleted(self) -> None:
        event = parse_broker_event({"kind": "deleted", "message_id": "m1"})

        assert isinstance(event, MessageDeleted)
        assert event.message_id == "m1"

    def test_member_profile_changed(self) -> None:
        event = parse_broker_event(
            {
                "kind": "member_profile_changed",
                "author_id": "u1",
                "display_name": "Alice",
                "avatar_url": "https://img/alice.png",
                "has_custom_name": True,
                "has_custom_image": True,
            }
        )

        assert isinstance(event, MemberProfileChanged)
        assert event.to_profile() == AuthorProfile(
            display_name="Alice", avatar_url="https://img/alice.png"
        )

    def test_accepts_json_string(self) -> None:
        raw = json.dumps({"kind": "deleted", "message_id": "m1"})

        assert isinstance(parse_broker_event(raw), MessageDeleted)

    @pytest.mark.parametrize(
        "payload",
        [
            {"kind": "unknown"},
            {"message": {"id": "m1"}},
            {"kind": "created"},
            {"kind": "created", "message": {"author_id": "u1", "channel_id": "c1"}},
            {"kind": "deleted", "message_id": ""},
            "not json",
            None,
        ],
    )
    def test_malformed_payload_raises(self, payload: object) -> None:
        with pytest.raises(MalformedEventError):
            parse_broker_event(payload)


class TestDumpBrokerEvent:
    """Tests for dump_broker_event."""

    def test_includes_kind(self) -> None:
        data = dump_broker_event(MessageDeleted(message_id="m1"))

        assert data == {"kind": "deleted", "message_id": "m1"}

    def test_omits_fields_the_producer_never_set(self) -> None:
        event = MessageUpdated(
            message=Message(id="m1", author_id="u1", channel_id="c1", content="x")
        )

        data = dump_broker_event(event)

        assert data["kind"] == "updated"
        assert "author_name" not in data["message"]
        assert "is_vectorized" not in data["message"]
        assert data["message"]["content"] == "x"

    def test_decoded_snapshot_keeps_only_sent_fields(self) -> None:
        event = MessageUpdated(
            message=Message(id="m1", author_id="u1", channel_id="c1", content="x")
        )

        decoded = parse_broker_event(dump_broker_event(event))

        assert isinstance(decoded, MessageUpdated)
        assert "author_name" not in decoded.message.model_fields_set
