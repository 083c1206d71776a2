"""Outbound event routing to live connections.

Every event is wrapped in a ``{"event": name, "data": payload}`` envelope and
delivered to one connection, to a list of room members, or to everyone.
Sending to a connection with no live channel is a silent no-op, which covers
races with concurrent disconnects.

Performance Notes:
    - Fan-out uses asyncio.gather() for concurrent delivery
    - Channels whose send fails are detached automatically
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)


class Channel(Protocol):
    """Anything that can push a JSON document to one client (e.g. a WebSocket)."""

    async def send_json(self, data: Any) -> None:
        ...


def envelope(event: str, data: Any) -> Dict[str, Any]:
    return {"event": event, "data": data}


class BroadcastEngine:
    """Maps connection IDs to live channels and fans events out to them."""

    def __init__(self) -> None:
        # connection_id -> channel
        self._channels: Dict[str, Channel] = {}

    def attach(self, connection_id: str, channel: Channel) -> None:
        self._channels[connection_id] = channel

    def detach(self, connection_id: str) -> None:
        self._channels.pop(connection_id, None)

    def is_live(self, connection_id: str) -> bool:
        return connection_id in self._channels

    async def send(self, connection_id: str, event: str, data: Any) -> None:
        """Deliver an event to a single connection."""
        await self._deliver([connection_id], envelope(event, data))

    async def send_many(
        self,
        connection_ids: Iterable[str],
        event: str,
        data: Any,
        exclude: Optional[str] = None,
    ) -> None:
        """Deliver an event to several connections (e.g. a room's members).

        Args:
            connection_ids: Target connection IDs.
            event: Event name.
            data: JSON-serializable payload.
            exclude: Optional connection ID to skip (used for typing indicators).
        """
        targets = [cid for cid in connection_ids if cid != exclude]
        await self._deliver(targets, envelope(event, data))

    async def send_all(self, event: str, data: Any) -> None:
        """Deliver an event to every live connection."""
        await self._deliver(list(self._channels), envelope(event, data))

    async def _deliver(self, connection_ids: List[str], message: dict) -> None:
        channels = [
            (cid, self._channels[cid]) for cid in connection_ids
            if cid in self._channels
        ]
        if not channels:
            return

        results = await asyncio.gather(
            *[self._safe_send(channel, message) for _, channel in channels],
            return_exceptions=True
        )

        for (cid, channel), success in zip(channels, results):
            if success is not True and self._channels.get(cid) is channel:
                del self._channels[cid]
                logger.debug(f"Removed dead connection {cid}")

    async def _safe_send(self, channel: Channel, message: dict) -> bool:
        """Send to one channel, reporting failure instead of raising.

        Returns:
            True if successful, False if the channel failed.
        """
        try:
            await channel.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False
