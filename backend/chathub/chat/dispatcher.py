"""Inbound event dispatch.

Raw envelopes (``{"event": name, "data": payload}``) are parsed into one of a
closed set of typed payload models, the acting user is looked up once, and
the matching handler is called with the resolved identity.

Protocol Events:
    - user_join: register identity, join default room
    - join_room / create_room / leave_room: room membership
    - send_message / private_message: post messages
    - typing / add_reaction / mark_read: per-room side state
    - search_messages / load_older_messages / get_unread_counts: queries
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Tuple, Type

from pydantic import BaseModel, ValidationError

from .errors import ChatError, MalformedEventError, UnknownUserError
from .hub import ChatHub
from .schemas import (
    AddReactionEvent,
    CreateRoomEvent,
    GetUnreadCountsEvent,
    JoinRoomEvent,
    LeaveRoomEvent,
    LoadOlderMessagesEvent,
    MarkReadEvent,
    PrivateMessageEvent,
    SearchMessagesEvent,
    SendMessageEvent,
    TypingEvent,
    UserIdentity,
    UserJoinEvent,
)

logger = logging.getLogger(__name__)

# Event name -> payload model
EVENT_TYPES: Dict[str, Type[BaseModel]] = {
    "user_join": UserJoinEvent,
    "join_room": JoinRoomEvent,
    "create_room": CreateRoomEvent,
    "leave_room": LeaveRoomEvent,
    "send_message": SendMessageEvent,
    "private_message": PrivateMessageEvent,
    "typing": TypingEvent,
    "add_reaction": AddReactionEvent,
    "mark_read": MarkReadEvent,
    "search_messages": SearchMessagesEvent,
    "load_older_messages": LoadOlderMessagesEvent,
    "get_unread_counts": GetUnreadCountsEvent,
}


def parse_event(raw: Any) -> Tuple[str, BaseModel]:
    """Validate an envelope and build its typed payload.

    Raises:
        MalformedEventError: For a non-object envelope, an unknown event
            name, or a payload that fails validation.
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("event"), str):
        raise MalformedEventError("Invalid message format: event name is required")

    name = raw["event"]
    model = EVENT_TYPES.get(name)
    if model is None:
        raise MalformedEventError(f"Unknown event: {name}")

    data = raw.get("data")
    if data is None:
        data = {}
    try:
        return name, model.model_validate(data)
    except ValidationError as e:
        logger.debug(f"[Dispatch] {name} payload rejected: {e}")
        raise MalformedEventError(f"Invalid payload for {name}") from e


class EventDispatcher:
    """Routes parsed events to ChatHub operations."""

    def __init__(self, hub: ChatHub) -> None:
        self.hub = hub
        self._handlers: Dict[Type[BaseModel], Callable[[UserIdentity, Any], Awaitable[Any]]] = {
            JoinRoomEvent: self._on_join_room,
            CreateRoomEvent: self._on_create_room,
            LeaveRoomEvent: self._on_leave_room,
            SendMessageEvent: self._on_send_message,
            PrivateMessageEvent: self._on_private_message,
            TypingEvent: self._on_typing,
            AddReactionEvent: self._on_add_reaction,
            MarkReadEvent: self._on_mark_read,
            SearchMessagesEvent: self._on_search_messages,
            LoadOlderMessagesEvent: self._on_load_older_messages,
            GetUnreadCountsEvent: self._on_get_unread_counts,
        }

    async def dispatch(self, connection_id: str, raw: Any) -> None:
        """Handle one inbound envelope from ``connection_id``.

        Errors never escape. Malformed events and events from unknown users
        are dropped; a missing private-message recipient is answered with an
        ``error`` event to the sender.
        """
        try:
            name, event = parse_event(raw)
            logger.debug(f"[Dispatch] {connection_id} -> {name}")

            if isinstance(event, UserJoinEvent):
                await self.hub.register(connection_id, event.username, event.avatar)
                return

            user = self.hub.sessions.lookup(connection_id)
            if user is None:
                raise UnknownUserError(f"{name} from unregistered connection {connection_id}")

            await self._handlers[type(event)](user, event)
        except MalformedEventError as e:
            logger.warning(f"[Dispatch] Dropped event from {connection_id}: {e.message}")
        except ChatError as e:
            if e.notify:
                logger.warning(f"[Dispatch] Rejected event from {connection_id}: {e.message}")
                await self.hub.broadcaster.send(connection_id, "error", {"message": e.message})
            else:
                logger.debug(f"[Dispatch] Ignored: {e.message}")

    async def _on_join_room(self, user: UserIdentity, event: JoinRoomEvent) -> None:
        await self.hub.join_room(user, event.roomId)

    async def _on_create_room(self, user: UserIdentity, event: CreateRoomEvent) -> None:
        await self.hub.create_room(user, event.roomId, event.roomName)

    async def _on_leave_room(self, user: UserIdentity, event: LeaveRoomEvent) -> None:
        await self.hub.leave_room(user, event.roomId)

    async def _on_send_message(self, user: UserIdentity, event: SendMessageEvent) -> None:
        await self.hub.send_message(user, event, event.roomId)

    async def _on_private_message(self, user: UserIdentity, event: PrivateMessageEvent) -> None:
        await self.hub.private_message(user, event.to, event)

    async def _on_typing(self, user: UserIdentity, event: TypingEvent) -> None:
        await self.hub.set_typing(user, event.isTyping, event.roomId)

    async def _on_add_reaction(self, user: UserIdentity, event: AddReactionEvent) -> None:
        await self.hub.add_reaction(user, event.messageId, event.reaction, event.roomId)

    async def _on_mark_read(self, user: UserIdentity, event: MarkReadEvent) -> None:
        await self.hub.mark_read(user, event.messageIds, event.roomId)

    async def _on_search_messages(self, user: UserIdentity, event: SearchMessagesEvent) -> None:
        await self.hub.search_messages(user, event.query, event.roomId)

    async def _on_load_older_messages(
        self, user: UserIdentity, event: LoadOlderMessagesEvent
    ) -> None:
        await self.hub.load_older_messages(
            user, event.roomId, event.beforeMessageId, event.limit
        )

    async def _on_get_unread_counts(self, user: UserIdentity, event: GetUnreadCountsEvent) -> None:
        await self.hub.send_unread_counts(user)
