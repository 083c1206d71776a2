"""Session registry: connection ID -> registered user identity."""
import logging
from typing import Dict, List, Optional

from .schemas import UserIdentity, default_avatar

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps live connection IDs to user identities and their current room.

    The current room is an explicit field on the identity and is only read or
    written through this class.
    """

    def __init__(self, default_room: str) -> None:
        self.default_room = default_room
        # connection_id -> UserIdentity (insertion order = registration order)
        self._users: Dict[str, UserIdentity] = {}

    def register(
        self,
        connection_id: str,
        username: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> UserIdentity:
        """Register (or re-register) a connection and place it in the default room.

        Args:
            connection_id: Server-assigned connection ID.
            username: Requested display name; defaults to ``User_<id prefix>``.
            avatar: Avatar URL; defaults to a generated one.

        Returns:
            The stored identity. A second call for the same connection
            overwrites the previous identity.
        """
        name = (username or "").strip() or f"User_{connection_id[:6]}"
        user = UserIdentity(
            id=connection_id,
            username=name,
            avatar=avatar or default_avatar(name),
            currentRoom=self.default_room,
        )
        if connection_id in self._users:
            logger.info(f"[Sessions] Re-registering connection {connection_id} as {name}")
        self._users[connection_id] = user
        return user

    def lookup(self, connection_id: str) -> Optional[UserIdentity]:
        return self._users.get(connection_id)

    def set_current_room(self, connection_id: str, room_id: Optional[str]) -> None:
        user = self._users.get(connection_id)
        if user is not None:
            user.currentRoom = room_id

    def remove(self, connection_id: str) -> Optional[UserIdentity]:
        """Drop a connection's identity. Room and typing cleanup is the caller's job."""
        return self._users.pop(connection_id, None)

    def all_users(self) -> List[UserIdentity]:
        return list(self._users.values())

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._users

    def __len__(self) -> int:
        return len(self._users)
