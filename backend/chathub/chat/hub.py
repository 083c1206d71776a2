"""Chat hub: owns all chat state and turns operations into broadcasts.

This module ties the state components together:
    - SessionRegistry: who is behind each connection
    - RoomDirectory: rooms and membership
    - MessageStore: bounded per-room logs
    - TypingTracker / ReactionLedger / ReadReceiptTracker / UnreadCounter
    - BroadcastEngine: delivery to live connections

Every operation that touches a room runs under that room's asyncio.Lock,
including its broadcasts, so all members observe a room's events in the
order they were applied. Operations on different rooms run concurrently.
``join_room`` touches two rooms and takes both locks in sorted order.

Thread Safety:
    Designed for a single event loop. It is NOT thread-safe for concurrent
    access from multiple threads.
"""
import asyncio
import logging
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from .broadcast import BroadcastEngine, Channel
from .errors import RecipientNotFoundError
from .rooms import RoomDirectory
from .schemas import (
    ChatMessage,
    MessageDraft,
    ReactionKind,
    ReadEntry,
    UserIdentity,
)
from .sessions import SessionRegistry
from .store import (
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_PAGE_SIZE,
    SEARCH_RESULT_LIMIT,
    MessageStore,
)
from .trackers import (
    PRIVATE_ROOM_KEY,
    ReactionLedger,
    ReadReceiptTracker,
    TypingTracker,
    UnreadCounter,
)

logger = logging.getLogger(__name__)

DEFAULT_ROOM = "general"

# Number of messages delivered to a connection when it joins a room
JOIN_BACKLOG_SIZE = 50


class ChatHub:
    """Aggregate owning every piece of chat state for the process lifetime.

    The default room exists from construction, before any connection is
    accepted.
    """

    def __init__(
        self,
        default_room: str = DEFAULT_ROOM,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        join_backlog: int = JOIN_BACKLOG_SIZE,
        search_limit: int = SEARCH_RESULT_LIMIT,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.default_room = default_room
        self.join_backlog = join_backlog
        self.page_size = page_size

        self.sessions = SessionRegistry(default_room)
        self.rooms = RoomDirectory(default_room)
        self.store = MessageStore(
            history_limit=history_limit,
            search_limit=search_limit,
        )
        self.typing = TypingTracker()
        self.reactions = ReactionLedger()
        self.receipts = ReadReceiptTracker()
        self.unread = UnreadCounter()
        self.broadcaster = BroadcastEngine()

        self.store.create_log(default_room)
        # room_id -> lock serializing mutations and fan-out for that room
        self._room_locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(cls, settings: Any) -> "ChatHub":
        """Build a hub from a ``ChatSettings`` config section."""
        return cls(
            default_room=settings.default_room,
            history_limit=settings.history_limit,
            join_backlog=settings.join_backlog,
            search_limit=settings.search_limit,
            page_size=settings.page_size,
        )

    # =========================================================================
    # Locking
    # =========================================================================

    @asynccontextmanager
    async def _locked(
        self, *room_ids: Optional[str], create: bool = False
    ) -> AsyncIterator[None]:
        """Hold the locks of the given rooms, acquired in sorted order.

        Unknown rooms only get a lock when ``create`` is set, i.e. when the
        operation is about to create them.
        """
        async with AsyncExitStack() as stack:
            for room_id in sorted({rid for rid in room_ids if rid}):
                if not create and not self.rooms.exists(room_id):
                    continue
                lock = self._room_locks.setdefault(room_id, asyncio.Lock())
                await stack.enter_async_context(lock)
            yield

    def resolve_room(self, user: Optional[UserIdentity], room_id: Optional[str]) -> str:
        """Room an event targets: explicit ID, else current room, else default."""
        if room_id:
            return room_id
        if user is not None and user.currentRoom:
            return user.currentRoom
        return self.default_room

    # =========================================================================
    # Payload helpers
    # =========================================================================

    def room_members(self, room_id: str) -> List[dict]:
        members = []
        for connection_id in self.rooms.members(room_id):
            user = self.sessions.lookup(connection_id)
            if user is not None:
                members.append(user.model_dump())
        return members

    def user_list(self) -> List[dict]:
        return [user.model_dump() for user in self.sessions.all_users()]

    @staticmethod
    def _dump_messages(messages: List[ChatMessage]) -> List[dict]:
        return [msg.model_dump(mode="json") for msg in messages]

    async def _emit_room_members(self, room_id: str) -> None:
        await self.broadcaster.send_many(
            self.rooms.members(room_id),
            "room_members",
            {"roomId": room_id, "members": self.room_members(room_id)},
        )

    async def _ensure_room(self, room_id: str, display_name: Optional[str] = None) -> bool:
        """Create a room (and its log) if needed, announcing new rooms globally."""
        created = self.rooms.ensure_room(room_id, display_name)
        if created:
            self.store.create_log(room_id)
            await self.broadcaster.send_all("rooms_list", self.rooms.rooms())
        return created

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self, channel: Channel) -> str:
        """Attach a freshly accepted channel and greet it.

        Returns:
            The server-assigned connection ID.
        """
        connection_id = str(uuid.uuid4())
        self.broadcaster.attach(connection_id, channel)
        await self.broadcaster.send(connection_id, "connected", {"connectionId": connection_id})
        await self.broadcaster.send(connection_id, "rooms_list", self.rooms.rooms())
        logger.info(f"[Hub] Connection {connection_id} attached")
        return connection_id

    async def register(
        self,
        connection_id: str,
        username: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> UserIdentity:
        """Register a connection's identity and place it in the default room."""
        previous = self.sessions.lookup(connection_id)
        previous_room = previous.currentRoom if previous else None

        async with self._locked(self.default_room, previous_room):
            user = self.sessions.register(connection_id, username, avatar)
            if previous_room and previous_room != self.default_room:
                if self.rooms.remove_member(previous_room, connection_id):
                    await self._emit_room_members(previous_room)
            self.rooms.add_member(self.default_room, connection_id)
            self.unread.init(connection_id)

            await self.broadcaster.send_all("user_list", self.user_list())
            await self.broadcaster.send_many(
                self.rooms.members(self.default_room),
                "user_joined",
                {"username": user.username, "id": connection_id, "room": self.default_room},
            )
            await self.broadcaster.send(connection_id, "load_messages", {
                "roomId": self.default_room,
                "messages": self._dump_messages(
                    self.store.tail(self.default_room, self.join_backlog)
                ),
            })
            await self.broadcaster.send(connection_id, "room_members", {
                "roomId": self.default_room,
                "members": self.room_members(self.default_room),
            })

        logger.info(f"[Hub] {user.username} ({connection_id}) joined the chat")
        return user

    async def disconnect(self, connection_id: str) -> Optional[UserIdentity]:
        """Tear down a connection: membership, typing, identity, unread state."""
        self.broadcaster.detach(connection_id)
        user = self.sessions.lookup(connection_id)
        if user is None:
            logger.info(f"[Hub] Unregistered connection {connection_id} closed")
            return None

        room_id = user.currentRoom
        async with self._locked(room_id):
            if room_id and self.rooms.remove_member(room_id, connection_id):
                await self.broadcaster.send_many(
                    self.rooms.members(room_id),
                    "user_left_room",
                    {"username": user.username, "roomId": room_id},
                )
                await self._emit_room_members(room_id)

        for typing_room in self.typing.clear(connection_id):
            await self.broadcaster.send_many(
                self.rooms.members(typing_room),
                "typing_users",
                {"roomId": typing_room, "users": self.typing.typing_users(typing_room)},
            )

        self.sessions.remove(connection_id)
        self.unread.drop(connection_id)

        await self.broadcaster.send_all("user_left", {"username": user.username, "id": connection_id})
        await self.broadcaster.send_all("user_list", self.user_list())
        logger.info(f"[Hub] {user.username} ({connection_id}) left the chat")
        return user

    # =========================================================================
    # Rooms
    # =========================================================================

    async def create_room(
        self, user: UserIdentity, room_id: str, room_name: Optional[str] = None
    ) -> bool:
        """Create a room on request; only genuine creation is acknowledged."""
        async with self._locked(room_id, create=True):
            created = await self._ensure_room(room_id, room_name)
            if created:
                await self.broadcaster.send(user.id, "room_created", {
                    "roomId": room_id,
                    "roomName": room_name or room_id,
                })
                logger.info(f"[Hub] {user.username} created room {room_id}")
        return created

    async def join_room(self, user: UserIdentity, room_id: str) -> None:
        """Move a connection from its current room into ``room_id``."""
        connection_id = user.id
        previous_room = user.currentRoom

        async with self._locked(previous_room, room_id, create=True):
            if previous_room and previous_room != room_id:
                if self.rooms.remove_member(previous_room, connection_id):
                    await self._emit_room_members(previous_room)

            await self._ensure_room(room_id)
            self.rooms.add_member(room_id, connection_id)
            self.sessions.set_current_room(connection_id, room_id)

            self.unread.reset(connection_id, room_id)
            await self.broadcaster.send(
                connection_id, "unread_count_update", {"roomId": room_id, "count": 0}
            )
            await self.broadcaster.send(connection_id, "load_messages", {
                "roomId": room_id,
                "messages": self._dump_messages(self.store.tail(room_id, self.join_backlog)),
            })
            await self.broadcaster.send_many(
                self.rooms.members(room_id),
                "user_joined_room",
                {"username": user.username, "roomId": room_id},
            )
            await self._emit_room_members(room_id)

        logger.info(f"[Hub] {user.username} joined room {room_id}")

    async def leave_room(self, user: UserIdentity, room_id: str) -> bool:
        """Remove a connection from a room. The room itself is kept."""
        async with self._locked(room_id):
            if not self.rooms.remove_member(room_id, user.id):
                return False
            if user.currentRoom == room_id:
                self.sessions.set_current_room(user.id, None)
            await self.broadcaster.send_many(
                self.rooms.members(room_id),
                "user_left_room",
                {"username": user.username, "roomId": room_id},
            )
            await self._emit_room_members(room_id)

        logger.info(f"[Hub] {user.username} left room {room_id}")
        return True

    # =========================================================================
    # Messages
    # =========================================================================

    async def send_message(
        self, user: UserIdentity, draft: MessageDraft, room_id: Optional[str] = None
    ) -> ChatMessage:
        """Append a message to a room log and fan it out.

        Members receive ``receive_message``, every member but the sender gets
        an unread bump, and the sender gets ``message_delivered``.
        """
        target = self.resolve_room(user, room_id)
        async with self._locked(target, create=True):
            await self._ensure_room(target)
            message = self.store.append(target, draft, user)
            members = self.rooms.members(target)

            await self.broadcaster.send_many(
                members, "receive_message", message.model_dump(mode="json")
            )
            for connection_id, count in self.unread.increment(target, members, user.id).items():
                await self.broadcaster.send(
                    connection_id, "unread_count_update", {"roomId": target, "count": count}
                )
            await self.broadcaster.send(user.id, "message_delivered", {"messageId": message.id})
            message.delivered = True

        logger.debug(f"[Hub] Message {message.id} from {user.username} in room {target}")
        return message

    async def private_message(
        self, user: UserIdentity, recipient_id: str, draft: MessageDraft
    ) -> ChatMessage:
        """Deliver a point-to-point message and mirror it to the sender.

        Raises:
            RecipientNotFoundError: If ``recipient_id`` is not registered.
        """
        recipient = self.sessions.lookup(recipient_id)
        if recipient is None:
            raise RecipientNotFoundError(recipient_id)

        message = ChatMessage(
            recipientId=recipient_id,
            isPrivate=True,
            sender=user.username,
            senderId=user.id,
            senderAvatar=user.avatar,
            message=None if draft.file is not None else draft.message,
            file=draft.file,
        )
        payload = message.model_dump(mode="json")
        await self.broadcaster.send(recipient_id, "private_message", payload)
        if recipient_id != user.id:
            await self.broadcaster.send(user.id, "private_message", payload)

        count = self.unread.increment_one(recipient_id, PRIVATE_ROOM_KEY)
        await self.broadcaster.send(
            recipient_id, "unread_count_update", {"roomId": PRIVATE_ROOM_KEY, "count": count}
        )
        return message

    async def set_typing(
        self, user: UserIdentity, is_typing: bool, room_id: Optional[str] = None
    ) -> List[str]:
        """Update the typing set and tell every other member of the room."""
        target = self.resolve_room(user, room_id)
        async with self._locked(target):
            users = self.typing.set_typing(target, user.id, user.username, is_typing)
            await self.broadcaster.send_many(
                self.rooms.members(target),
                "typing_users",
                {"roomId": target, "users": users},
                exclude=user.id,
            )
        return users

    async def add_reaction(
        self,
        user: UserIdentity,
        message_id: str,
        kind: ReactionKind,
        room_id: Optional[str] = None,
    ) -> Dict[str, List[str]]:
        target = self.resolve_room(user, room_id)
        async with self._locked(target):
            reactions = self.reactions.react(message_id, user.id, kind)
            await self.broadcaster.send_many(self.rooms.members(target), "reaction_added", {
                "messageId": message_id,
                "reaction": kind.value,
                "reactions": reactions,
                "userId": user.id,
                "username": user.username,
            })
        return reactions

    async def mark_read(
        self, user: UserIdentity, message_ids: List[str], room_id: Optional[str] = None
    ) -> None:
        """Record read receipts, one ``read_receipt`` broadcast per message.

        Message IDs are not validated against the room log; receipts for
        unknown IDs are still recorded and broadcast.
        """
        target = self.resolve_room(user, room_id)
        async with self._locked(target):
            for message_id in message_ids:
                timestamp = self.receipts.mark_read(message_id, user.id)
                stored = self.store.find(target, message_id)
                if stored is not None:
                    stored.readBy = [e for e in stored.readBy if e.userId != user.id]
                    stored.readBy.append(
                        ReadEntry(userId=user.id, username=user.username, timestamp=timestamp)
                    )
                await self.broadcaster.send_many(self.rooms.members(target), "read_receipt", {
                    "messageId": message_id,
                    "userId": user.id,
                    "username": user.username,
                    "timestamp": timestamp,
                })

    # =========================================================================
    # Queries (answered to the requester only)
    # =========================================================================

    async def search_messages(
        self, user: UserIdentity, query: str, room_id: Optional[str] = None
    ) -> List[ChatMessage]:
        target = self.resolve_room(user, room_id)
        results = self.store.search(target, query)
        await self.broadcaster.send(user.id, "search_results", {
            "query": query,
            "results": self._dump_messages(results),
        })
        return results

    async def load_older_messages(
        self,
        user: UserIdentity,
        room_id: Optional[str] = None,
        before_message_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[ChatMessage]:
        target = self.resolve_room(user, room_id)
        messages = self.store.page(target, before_message_id, limit or self.page_size)
        await self.broadcaster.send(user.id, "older_messages", {
            "roomId": target,
            "messages": self._dump_messages(messages),
        })
        return messages

    async def send_unread_counts(self, user: UserIdentity) -> Dict[str, int]:
        counts = self.unread.snapshot(user.id)
        await self.broadcaster.send(user.id, "unread_counts", counts)
        return counts


# Process-wide hub shared by all WebSocket handlers
_hub: Optional[ChatHub] = None


def get_hub() -> ChatHub:
    """Return the process-wide hub, creating a default one on first use."""
    global _hub
    if _hub is None:
        _hub = ChatHub()
    return _hub


def set_hub(hub: Optional[ChatHub]) -> None:
    """Install (or, with None, reset) the process-wide hub."""
    global _hub
    _hub = hub
