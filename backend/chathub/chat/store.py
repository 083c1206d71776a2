"""Bounded, append-only message log per room.

Each room keeps at most ``history_limit`` messages; once the cap is exceeded
the oldest entry is dropped. All read operations return messages oldest
first.
"""
import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from .schemas import ChatMessage, MessageDraft, UserIdentity

logger = logging.getLogger(__name__)

# Default retention cap per room
DEFAULT_HISTORY_LIMIT = 500

# Default page size for load_older_messages
DEFAULT_PAGE_SIZE = 20

# Maximum number of search hits returned
SEARCH_RESULT_LIMIT = 20


class MessageStore:
    """In-memory per-room message logs with pagination and search."""

    def __init__(
        self,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        search_limit: int = SEARCH_RESULT_LIMIT,
    ) -> None:
        self.history_limit = history_limit
        self.search_limit = search_limit
        # room_id -> log (oldest first)
        self._logs: Dict[str, Deque[ChatMessage]] = {}

    def create_log(self, room_id: str) -> None:
        self._logs.setdefault(room_id, deque())

    def append(self, room_id: str, draft: MessageDraft, sender: UserIdentity) -> ChatMessage:
        """Stamp a draft and append it to a room's log.

        Args:
            room_id: Room to post to (log created if missing).
            draft: Validated message body; an attachment clears the text.
            sender: Identity whose username/avatar are snapshotted.

        Returns:
            The stored message.
        """
        message = ChatMessage(
            roomId=room_id,
            sender=sender.username,
            senderId=sender.id,
            senderAvatar=sender.avatar,
            message=None if draft.file is not None else draft.message,
            file=draft.file,
        )
        log = self._logs.setdefault(room_id, deque())
        log.append(message)
        while len(log) > self.history_limit:
            evicted = log.popleft()
            logger.debug(f"[Store] Evicted message {evicted.id} from room {room_id}")
        return message

    def history(self, room_id: str) -> List[ChatMessage]:
        return list(self._logs.get(room_id, ()))

    def count(self, room_id: str) -> int:
        return len(self._logs.get(room_id, ()))

    def find(self, room_id: str, message_id: str) -> Optional[ChatMessage]:
        for message in self._logs.get(room_id, ()):
            if message.id == message_id:
                return message
        return None

    def tail(self, room_id: str, limit: int) -> List[ChatMessage]:
        """Most recent ``limit`` messages, oldest first."""
        if limit <= 0:
            return []
        messages = self.history(room_id)
        return messages[-limit:]

    def page(
        self,
        room_id: str,
        before_message_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> List[ChatMessage]:
        """Page backwards through a room's log.

        Args:
            room_id: Room to read.
            before_message_id: Anchor; returns the messages immediately before
                it. When absent, or when the anchor is no longer in the log,
                the most recent page is returned instead.
            limit: Page size; values below 1 are treated as 1.

        Returns:
            Up to ``limit`` messages, oldest first.
        """
        limit = max(1, limit)
        messages = self.history(room_id)

        if before_message_id is not None:
            index = next(
                (i for i, msg in enumerate(messages) if msg.id == before_message_id),
                None,
            )
            if index is None:
                logger.debug(
                    f"[Store] Anchor {before_message_id} not in room {room_id}, "
                    "returning latest page"
                )
            else:
                return messages[max(0, index - limit):index]

        return messages[-limit:]

    def search(self, room_id: str, query: str) -> List[ChatMessage]:
        """Case-insensitive substring search over body and sender name.

        Returns:
            The last ``search_limit`` matches in arrival order. An empty
            query matches every message.
        """
        needle = query.lower()
        hits = [
            msg for msg in self._logs.get(room_id, ())
            if (msg.message and needle in msg.message.lower())
            or needle in msg.sender.lower()
        ]
        return hits[-self.search_limit:]
