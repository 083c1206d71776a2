"""Exceptions raised inside the chat hub.

None of these are fatal: the dispatcher catches every ChatError and logs it.
Only errors with ``notify`` set are answered with an ``error`` event. The
WebSocket stays open in all cases.
"""


class ChatError(Exception):
    """Base class for hub errors.

    Attributes:
        notify: Whether the sender should receive an ``error`` event.
    """
    notify = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnknownUserError(ChatError):
    """Event received from a connection that never sent ``user_join``."""
    notify = False


class RecipientNotFoundError(ChatError):
    """Private message addressed to a connection that is not registered."""

    def __init__(self, recipient_id: str) -> None:
        super().__init__("User not found")
        self.recipient_id = recipient_id


class MalformedEventError(ChatError):
    """Envelope or payload that does not match the event protocol.

    Absorbed as a no-op: logged, never echoed to the sender.
    """
    notify = False
