"""Pydantic models for the chat hub.

This module defines the data flowing through the hub:
    - UserIdentity: a registered connection (who is behind a socket)
    - Attachment: an already-uploaded file reference (opaque to the hub)
    - ChatMessage: a stored room message or a private message
    - ReactionKind: the closed set of reactions a user may leave
    - Inbound event payloads: one model per client -> server event

Field names are camelCase because the models are dumped straight onto the
wire, matching the payloads the browser client sends and expects.
"""
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from urllib.parse import quote

from pydantic import BaseModel, Field, model_validator


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_message_id() -> str:
    """Generate a unique, roughly time-ordered message ID (``<ms>-<hex>``)."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def default_avatar(username: str) -> str:
    """Generated avatar URL used when a client does not supply one."""
    return f"https://ui-avatars.com/api/?name={quote(username)}&background=random"


class ReactionKind(str, Enum):
    """Reactions a user can leave on a message (one per user per message)."""
    LIKE = "like"
    LOVE = "love"
    SMILE = "smile"
    DISLIKE = "dislike"


class UserIdentity(BaseModel):
    """Identity bound to one live connection.

    Attributes:
        id: Server-assigned connection ID.
        username: Display name chosen at join time.
        avatar: Avatar image URL.
        currentRoom: Room the connection currently belongs to (None after leaving).
        joinedAt: ISO-8601 registration time.
    """
    id: str = Field(..., description="Connection ID")
    username: str = Field(..., description="Display name")
    avatar: str = Field(..., description="Avatar URL")
    currentRoom: Optional[str] = Field(default=None, description="Current room ID")
    joinedAt: str = Field(default_factory=utc_now_iso, description="Registration time")


class Attachment(BaseModel):
    """Reference to a file produced by the upload endpoint."""
    url: str = Field(..., description="Download URL")
    filename: str = Field(..., description="Original filename")
    size: int = Field(default=0, ge=0, description="Size in bytes")
    mimetype: str = Field(default="application/octet-stream", description="MIME type")


class ReadEntry(BaseModel):
    """One read acknowledgment recorded on a message."""
    userId: str
    username: str
    timestamp: str


class ChatMessage(BaseModel):
    """A message as stored in a room log and sent to clients.

    Exactly one of ``message`` (text body) and ``file`` (attachment) is set.
    The sender fields are a snapshot taken at send time and do not follow
    later profile changes.
    """
    id: str = Field(default_factory=new_message_id, description="Unique message ID")
    roomId: Optional[str] = Field(default=None, description="Room the message was posted to")
    recipientId: Optional[str] = Field(default=None, description="Recipient of a private message")
    isPrivate: bool = Field(default=False)
    sender: str = Field(..., description="Sender username at send time")
    senderId: str = Field(..., description="Sender connection ID")
    senderAvatar: str = Field(default="", description="Sender avatar at send time")
    message: Optional[str] = Field(default=None, description="Text body")
    file: Optional[Attachment] = Field(default=None, description="Attachment")
    timestamp: str = Field(default_factory=utc_now_iso)
    delivered: bool = Field(default=False)
    readBy: List[ReadEntry] = Field(default_factory=list)


class MessageDraft(BaseModel):
    """Body of a message before the hub stamps it.

    An attachment wins over text: the body is cleared when a file is present.
    """
    message: Optional[str] = None
    file: Optional[Attachment] = None

    @model_validator(mode="after")
    def _exactly_one_body(self) -> "MessageDraft":
        if self.file is not None:
            self.message = None
        elif self.message is None:
            raise ValueError("message text or file is required")
        return self


# =============================================================================
# Inbound event payloads (client -> server)
# =============================================================================


class UserJoinEvent(BaseModel):
    username: Optional[str] = None
    avatar: Optional[str] = None


class JoinRoomEvent(BaseModel):
    roomId: str = Field(..., min_length=1)
    username: Optional[str] = None


class CreateRoomEvent(BaseModel):
    roomId: str = Field(..., min_length=1)
    roomName: Optional[str] = None


class LeaveRoomEvent(BaseModel):
    roomId: str = Field(..., min_length=1)


class SendMessageEvent(MessageDraft):
    roomId: Optional[str] = None


class PrivateMessageEvent(MessageDraft):
    to: str = Field(..., min_length=1)


class TypingEvent(BaseModel):
    roomId: Optional[str] = None
    isTyping: bool = True


class AddReactionEvent(BaseModel):
    messageId: str = Field(..., min_length=1)
    reaction: ReactionKind
    roomId: Optional[str] = None


class MarkReadEvent(BaseModel):
    messageIds: List[str] = Field(default_factory=list)
    roomId: Optional[str] = None


class SearchMessagesEvent(BaseModel):
    query: str = ""
    roomId: Optional[str] = None


class LoadOlderMessagesEvent(BaseModel):
    roomId: Optional[str] = None
    beforeMessageId: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1, description="Page size (server default: 20)")


class GetUnreadCountsEvent(BaseModel):
    pass
