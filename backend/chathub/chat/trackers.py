"""Per-room and per-message side state: typing, reactions, receipts, unread.

These trackers only hold state. The hub decides who gets notified about
each change.
"""
from typing import Dict, Iterable, List

from .schemas import ReactionKind, utc_now_iso

# Synthetic room key that aggregates unread private messages per recipient
PRIVATE_ROOM_KEY = "private"


class TypingTracker:
    """Room -> {connection_id: username} of users currently composing.

    Entries are never time-decayed here; clients send ``isTyping: false``
    after inactivity and disconnects clear everything.
    """

    def __init__(self) -> None:
        self._typing: Dict[str, Dict[str, str]] = {}

    def set_typing(
        self, room_id: str, connection_id: str, username: str, is_typing: bool
    ) -> List[str]:
        """Add or remove a typer and return the room's typing usernames."""
        if is_typing:
            self._typing.setdefault(room_id, {})[connection_id] = username
        else:
            room = self._typing.get(room_id, {})
            room.pop(connection_id, None)
            if not room:
                self._typing.pop(room_id, None)
        return self.typing_users(room_id)

    def typing_users(self, room_id: str) -> List[str]:
        return list(self._typing.get(room_id, {}).values())

    def clear(self, connection_id: str) -> List[str]:
        """Remove a connection from every room. Returns the rooms it was typing in."""
        affected = []
        for room_id in list(self._typing):
            room = self._typing[room_id]
            if room.pop(connection_id, None) is not None:
                affected.append(room_id)
            if not room:
                del self._typing[room_id]
        return affected


class ReactionLedger:
    """Message -> reaction kind -> ordered connection IDs.

    A connection appears under at most one kind per message.
    """

    def __init__(self) -> None:
        self._reactions: Dict[str, Dict[ReactionKind, Dict[str, None]]] = {}

    def react(self, message_id: str, connection_id: str, kind: ReactionKind) -> Dict[str, List[str]]:
        """Move a connection's reaction on a message to ``kind``.

        Reacting again with the same kind keeps the reaction in place.

        Returns:
            The message's full reaction map (kind value -> connection IDs).
        """
        entry = self._reactions.setdefault(message_id, {})
        for other, users in entry.items():
            if other != kind:
                users.pop(connection_id, None)
        entry.setdefault(kind, {})[connection_id] = None
        return self.reactions(message_id)

    def reactions(self, message_id: str) -> Dict[str, List[str]]:
        return {
            kind.value: list(users)
            for kind, users in self._reactions.get(message_id, {}).items()
        }


class ReadReceiptTracker:
    """Message -> {connection_id: timestamp}. Later marks overwrite earlier ones."""

    def __init__(self) -> None:
        self._receipts: Dict[str, Dict[str, str]] = {}

    def mark_read(self, message_id: str, connection_id: str) -> str:
        """Record an acknowledgment and return its timestamp."""
        timestamp = utc_now_iso()
        self._receipts.setdefault(message_id, {})[connection_id] = timestamp
        return timestamp

    def read_by(self, message_id: str) -> Dict[str, str]:
        return dict(self._receipts.get(message_id, {}))


class UnreadCounter:
    """Connection -> room -> number of messages posted since the last reset."""

    def __init__(self) -> None:
        self._counts: Dict[str, Dict[str, int]] = {}

    def init(self, connection_id: str) -> None:
        self._counts[connection_id] = {}

    def increment(
        self, room_id: str, members: Iterable[str], excluding: str
    ) -> Dict[str, int]:
        """Bump the room counter for every member except the sender.

        Returns:
            {connection_id: new count} for each connection that changed.
        """
        updated = {}
        for connection_id in members:
            if connection_id == excluding:
                continue
            updated[connection_id] = self.increment_one(connection_id, room_id)
        return updated

    def increment_one(self, connection_id: str, room_id: str) -> int:
        counts = self._counts.setdefault(connection_id, {})
        counts[room_id] = counts.get(room_id, 0) + 1
        return counts[room_id]

    def reset(self, connection_id: str, room_id: str) -> int:
        self._counts.setdefault(connection_id, {})[room_id] = 0
        return 0

    def count(self, connection_id: str, room_id: str) -> int:
        return self._counts.get(connection_id, {}).get(room_id, 0)

    def snapshot(self, connection_id: str) -> Dict[str, int]:
        return dict(self._counts.get(connection_id, {}))

    def drop(self, connection_id: str) -> None:
        self._counts.pop(connection_id, None)
