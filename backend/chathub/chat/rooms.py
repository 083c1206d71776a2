"""Room directory: known rooms and their membership.

Rooms are created lazily and never deleted. Membership is kept as an
insertion-ordered dict so member lists come out in join order.
"""
import logging
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class RoomDirectory:
    """Known room IDs, their display names and their member connection IDs."""

    def __init__(self, default_room: str) -> None:
        self.default_room = default_room
        # room_id -> display name (None for implicitly created rooms)
        self._names: Dict[str, Optional[str]] = {}
        # room_id -> ordered set of connection IDs
        self._members: Dict[str, Dict[str, None]] = {}
        self.ensure_room(default_room)

    def ensure_room(self, room_id: str, display_name: Optional[str] = None) -> bool:
        """Create a room if it does not exist yet.

        Args:
            room_id: Room identifier.
            display_name: Optional name; the first name given wins.

        Returns:
            True if the room was newly created, False if it already existed.
        """
        if room_id in self._members:
            if display_name and self._names.get(room_id) is None:
                self._names[room_id] = display_name
            return False
        self._members[room_id] = {}
        self._names[room_id] = display_name
        logger.info(f"[Rooms] Created room {room_id}")
        return True

    def exists(self, room_id: str) -> bool:
        return room_id in self._members

    def add_member(self, room_id: str, connection_id: str) -> None:
        self.ensure_room(room_id)
        self._members[room_id][connection_id] = None

    def remove_member(self, room_id: str, connection_id: str) -> bool:
        """Remove a connection from a room. Returns False if it was not a member."""
        members = self._members.get(room_id)
        if members is None or connection_id not in members:
            return False
        del members[connection_id]
        return True

    def members(self, room_id: str) -> List[str]:
        return list(self._members.get(room_id, {}))

    def name(self, room_id: str) -> Optional[str]:
        return self._names.get(room_id)

    def rooms(self) -> List[str]:
        """All room IDs in creation order."""
        return list(self._members)
