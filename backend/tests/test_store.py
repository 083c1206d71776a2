"""Tests for the per-room message store."""
import pytest

from chathub.chat.schemas import Attachment, MessageDraft, UserIdentity
from chathub.chat.store import MessageStore


@pytest.fixture
def sender():
    return UserIdentity(id="conn-b", username="Bob", avatar="https://example.com/b.png")


@pytest.fixture
def store():
    return MessageStore()


def post(store, sender, text, room="general"):
    return store.append(room, MessageDraft(message=text), sender)


class TestAppend:
    def test_append_stamps_sender_snapshot(self, store, sender):
        msg = post(store, sender, "hi")
        assert msg.roomId == "general"
        assert msg.sender == "Bob"
        assert msg.senderId == "conn-b"
        assert msg.senderAvatar == "https://example.com/b.png"
        assert msg.message == "hi"
        assert msg.file is None
        assert msg.delivered is False
        assert msg.readBy == []
        assert msg.id and msg.timestamp

    def test_sender_snapshot_ignores_later_rename(self, store, sender):
        msg = post(store, sender, "hi")
        sender.username = "Robert"
        assert msg.sender == "Bob"

    def test_attachment_clears_body(self, store, sender):
        file = Attachment(url="/uploads/a.png", filename="a.png", size=10, mimetype="image/png")
        msg = store.append("general", MessageDraft(message="caption", file=file), sender)
        assert msg.message is None
        assert msg.file == file

    def test_draft_without_body_or_file_is_rejected(self):
        with pytest.raises(ValueError):
            MessageDraft()
        with pytest.raises(ValueError):
            MessageDraft(message=None, file=None)

    def test_whitespace_body_is_a_message(self, store, sender):
        msg = store.append("general", MessageDraft(message="   "), sender)
        assert msg.message == "   "
        assert store.count("general") == 1

    def test_message_ids_are_unique(self, store, sender):
        ids = {post(store, sender, f"m{i}").id for i in range(50)}
        assert len(ids) == 50

    def test_eviction_drops_exactly_the_oldest(self, sender):
        store = MessageStore(history_limit=500)
        first = post(store, sender, "m0")
        second = post(store, sender, "m1")
        for i in range(2, 500):
            post(store, sender, f"m{i}")
        assert store.count("general") == 500

        newest = post(store, sender, "m500")

        history = store.history("general")
        assert len(history) == 500
        assert history[0].id == second.id
        assert history[-1].id == newest.id
        assert store.find("general", first.id) is None

    def test_rooms_are_isolated(self, store, sender):
        post(store, sender, "a", room="general")
        post(store, sender, "b", room="random")
        assert [m.message for m in store.history("general")] == ["a"]
        assert [m.message for m in store.history("random")] == ["b"]


class TestTail:
    def test_tail_is_suffix_oldest_first(self, store, sender):
        for i in range(10):
            post(store, sender, f"m{i}")
        assert [m.message for m in store.tail("general", 3)] == ["m7", "m8", "m9"]

    def test_tail_shorter_than_limit(self, store, sender):
        post(store, sender, "only")
        assert [m.message for m in store.tail("general", 50)] == ["only"]

    def test_tail_unknown_room_is_empty(self, store):
        assert store.tail("nowhere", 50) == []


class TestPage:
    def test_page_without_anchor_returns_latest(self, store, sender):
        for i in range(30):
            post(store, sender, f"m{i}")
        page = store.page("general", None, 20)
        assert [m.message for m in page] == [f"m{i}" for i in range(10, 30)]

    def test_page_before_anchor(self, store, sender):
        msgs = [post(store, sender, f"m{i}") for i in range(30)]
        page = store.page("general", msgs[25].id, 5)
        assert [m.message for m in page] == ["m20", "m21", "m22", "m23", "m24"]

    def test_page_near_start_of_log(self, store, sender):
        msgs = [post(store, sender, f"m{i}") for i in range(30)]
        page = store.page("general", msgs[3].id, 20)
        assert [m.message for m in page] == ["m0", "m1", "m2"]

    def test_stale_anchor_degrades_to_latest_page(self, store, sender):
        for i in range(30):
            post(store, sender, f"m{i}")
        page = store.page("general", "does-not-exist", 20)
        assert [m.message for m in page] == [f"m{i}" for i in range(10, 30)]

    def test_large_limit_is_not_capped(self, store, sender):
        for i in range(150):
            post(store, sender, f"m{i}")
        page = store.page("general", None, 120)
        assert len(page) == 120
        assert page[0].message == "m30"
        assert len(store.page("general", None, 0)) == 1


class TestSearch:
    def test_search_body_case_insensitive(self, store, sender):
        post(store, sender, "Hello World")
        post(store, sender, "goodbye")
        results = store.search("general", "hello")
        assert [m.message for m in results] == ["Hello World"]

    def test_search_matches_sender_name(self, store, sender):
        post(store, sender, "first")
        other = UserIdentity(id="conn-c", username="Carol", avatar="")
        post(store, other, "second")
        results = store.search("general", "BOB")
        assert [m.message for m in results] == ["first"]

    def test_search_returns_last_twenty_in_order(self, store, sender):
        for i in range(30):
            post(store, sender, f"match {i}")
        results = store.search("general", "match")
        assert len(results) == 20
        assert results[0].message == "match 10"
        assert results[-1].message == "match 29"

    def test_search_skips_attachments_body(self, store, sender):
        file = Attachment(url="/uploads/x.pdf", filename="x.pdf")
        store.append("general", MessageDraft(message="secret", file=file), sender)
        assert store.search("general", "secret") == []

    def test_search_no_hits_is_empty(self, store, sender):
        post(store, sender, "hello")
        assert store.search("general", "zzz") == []
        assert store.search("unknown-room", "hello") == []

    def test_empty_query_matches_latest_messages(self, store, sender):
        for i in range(25):
            post(store, sender, f"m{i}")
        results = store.search("general", "")
        assert [m.message for m in results] == [f"m{i}" for i in range(5, 25)]

    def test_whitespace_query_is_a_plain_substring(self, store, sender):
        post(store, sender, "two words")
        post(store, sender, "single")
        assert [m.message for m in store.search("general", " ")] == ["two words"]
