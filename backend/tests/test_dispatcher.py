"""Tests for inbound event parsing and dispatch."""
import asyncio

import pytest

from chathub.chat.dispatcher import EVENT_TYPES, EventDispatcher, parse_event
from chathub.chat.errors import MalformedEventError
from chathub.chat.schemas import (
    AddReactionEvent,
    LoadOlderMessagesEvent,
    ReactionKind,
    SendMessageEvent,
)
from conftest import RecordingChannel


class TestParseEvent:
    def test_every_client_event_is_known(self):
        assert set(EVENT_TYPES) == {
            "user_join", "join_room", "create_room", "leave_room",
            "send_message", "private_message", "typing", "add_reaction",
            "mark_read", "search_messages", "load_older_messages",
            "get_unread_counts",
        }

    def test_parses_typed_payload(self):
        name, event = parse_event({
            "event": "add_reaction",
            "data": {"messageId": "m1", "reaction": "love", "roomId": "general"},
        })
        assert name == "add_reaction"
        assert isinstance(event, AddReactionEvent)
        assert event.reaction is ReactionKind.LOVE

    def test_missing_data_defaults_to_empty(self):
        name, event = parse_event({"event": "load_older_messages"})
        assert isinstance(event, LoadOlderMessagesEvent)
        assert event.limit is None
        assert event.beforeMessageId is None

    def test_send_message_with_file_clears_text(self):
        _, event = parse_event({
            "event": "send_message",
            "data": {
                "message": "caption",
                "roomId": "general",
                "file": {"url": "/uploads/a.png", "filename": "a.png", "size": 1, "mimetype": "image/png"},
            },
        })
        assert isinstance(event, SendMessageEvent)
        assert event.message is None
        assert event.file.filename == "a.png"

    @pytest.mark.parametrize("raw", [
        None,
        [],
        "send_message",
        {"data": {}},
        {"event": 42},
        {"event": "launch_rockets", "data": {}},
        {"event": "add_reaction", "data": {"messageId": "m1", "reaction": "rocket"}},
        {"event": "send_message", "data": {"roomId": "general"}},
        {"event": "join_room", "data": {}},
        {"event": "load_older_messages", "data": {"limit": 0}},
    ])
    def test_malformed_envelopes(self, raw):
        with pytest.raises(MalformedEventError):
            parse_event(raw)


def test_events_from_unregistered_connection_are_ignored(hub):
    async def scenario():
        channel = RecordingChannel()
        connection_id = await hub.connect(channel)
        channel.clear()
        dispatcher = EventDispatcher(hub)

        await dispatcher.dispatch(connection_id, {
            "event": "send_message", "data": {"message": "hi", "roomId": "general"},
        })
        await dispatcher.dispatch(connection_id, {"event": "join_room", "data": {"roomId": "x"}})

        assert channel.sent == []
        assert hub.store.count("general") == 0
        assert hub.rooms.rooms() == ["general"]

    asyncio.run(scenario())


def test_malformed_events_are_dropped_silently(hub):
    async def scenario():
        channel = RecordingChannel()
        connection_id = await hub.connect(channel)
        dispatcher = EventDispatcher(hub)
        await dispatcher.dispatch(connection_id, {"event": "user_join", "data": {"username": "Alice"}})
        channel.clear()

        await dispatcher.dispatch(connection_id, {"event": "send_message", "data": {}})
        await dispatcher.dispatch(connection_id, {"event": "teleport", "data": {}})
        await dispatcher.dispatch(connection_id, {
            "event": "add_reaction", "data": {"messageId": "m1", "reaction": "rocket"},
        })
        assert channel.sent == []
        assert hub.store.count("general") == 0

    asyncio.run(scenario())


def test_private_message_to_missing_user_reports_error(hub):
    async def scenario():
        channel = RecordingChannel()
        connection_id = await hub.connect(channel)
        dispatcher = EventDispatcher(hub)
        await dispatcher.dispatch(connection_id, {"event": "user_join", "data": {"username": "Alice"}})
        channel.clear()

        await dispatcher.dispatch(connection_id, {
            "event": "private_message", "data": {"to": "ghost", "message": "hello"},
        })
        assert channel.sent == [{"event": "error", "data": {"message": "User not found"}}]

    asyncio.run(scenario())


def test_dispatch_routes_to_hub(hub):
    async def scenario():
        chan_a = RecordingChannel()
        chan_b = RecordingChannel()
        a_id = await hub.connect(chan_a)
        b_id = await hub.connect(chan_b)
        dispatcher = EventDispatcher(hub)

        await dispatcher.dispatch(a_id, {"event": "user_join", "data": {"username": "Alice"}})
        await dispatcher.dispatch(b_id, {"event": "user_join", "data": {"username": "Bob"}})
        await dispatcher.dispatch(b_id, {"event": "create_room", "data": {"roomId": "dev", "roomName": "Dev"}})
        await dispatcher.dispatch(a_id, {"event": "send_message", "data": {"message": "yo"}})
        await dispatcher.dispatch(b_id, {"event": "get_unread_counts", "data": {}})

        assert chan_b.last("room_created") == {"roomId": "dev", "roomName": "Dev"}
        assert chan_b.last("receive_message")["message"] == "yo"
        assert chan_b.last("unread_counts") == {"general": 1}

        await dispatcher.dispatch(b_id, {"event": "private_message", "data": {"to": a_id, "message": "dm"}})
        assert chan_a.last("private_message")["message"] == "dm"
        assert chan_a.last("unread_count_update") == {"roomId": "private", "count": 1}

    asyncio.run(scenario())
