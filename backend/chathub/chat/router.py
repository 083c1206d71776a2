"""Chat router providing the WebSocket endpoint and read-only HTTP dumps.

This module provides:
    - WebSocket /ws: real-time chat protocol
    - GET /api/rooms: known room IDs
    - GET /api/users: registered users
    - GET /api/messages/{room_id}: a room's stored message log

Protocol Flow:
    1. Client connects → Server sends: {event: "connected", data: {connectionId}}
       and {event: "rooms_list", data: [...]}
    2. Client sends: {event: "user_join", data: {username, avatar?}}
       → Server broadcasts user_list, user_joined, and sends load_messages
    3. Client sends any other event as {event, data}
    4. On disconnect → Server broadcasts user_left_room, user_left, user_list
"""
import asyncio
import json
import logging
from typing import List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .dispatcher import EventDispatcher
from .hub import get_hub

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/rooms")
async def list_rooms() -> List[str]:
    """Return every known room ID in creation order."""
    return get_hub().rooms.rooms()


@router.get("/api/users")
async def list_users() -> List[dict]:
    """Return every registered user."""
    return get_hub().user_list()


@router.get("/api/messages/{room_id}")
async def list_messages(room_id: str) -> List[dict]:
    """Return the stored log of a room (empty for unknown rooms).

    Example:
        GET /api/messages/general
    """
    hub = get_hub()
    return [msg.model_dump(mode="json") for msg in hub.store.history(room_id)]


@router.websocket("/ws")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for the chat hub.

    Each connection gets a server-assigned connection ID. Events from one
    connection are handled strictly in the order they arrive; a malformed
    frame is dropped and the loop continues.

    Args:
        websocket: The WebSocket connection.
    """
    hub = get_hub()
    await websocket.accept()
    connection_id = await hub.connect(websocket)
    dispatcher = EventDispatcher(hub)
    logger.info(f"[WS] Connection accepted: {connection_id}")

    try:
        while True:
            text = await websocket.receive_text()
            try:
                data = json.loads(text)
            except ValueError:
                logger.warning(f"[WS] Dropped non-JSON frame from {connection_id}")
                continue
            await dispatcher.dispatch(connection_id, data)
    except WebSocketDisconnect:
        logger.info(f"[WS] Connection closed: {connection_id}")
    finally:
        # Cleanup runs to completion even if this handler task is cancelled
        await asyncio.shield(hub.disconnect(connection_id))
