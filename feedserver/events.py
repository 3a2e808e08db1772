"""Broadcast post mutations to connected WebSocket subscribers."""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Dict, List, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

logger = logging.getLogger("feedserver.events")

POST_ACTIONS = frozenset({"create", "update", "delete"})


async def send_websocket_json(websocket: WebSocket, payload: Dict[str, Any]) -> bool:
    """Send a JSON payload to a websocket client, returning ``False`` if it failed."""

    if websocket.client_state == WebSocketState.DISCONNECTED:
        return False
    try:
        await websocket.send_json(payload)
    except Exception:
        return False
    return True


class PostEventBroadcaster:
    """Process-wide push channel; every subscriber receives every post event."""

    def __init__(self) -> None:
        self._subscribers: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self, websocket: WebSocket) -> None:
        # Only accepted sockets are registered, so emit never sends to a pending handshake.
        await websocket.accept()
        async with self._lock:
            self._subscribers.add(websocket)
        logger.info("Push subscriber connected (%s total)", len(self._subscribers))

    async def unsubscribe(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._subscribers.discard(websocket)
        logger.info("Push subscriber disconnected (%s total)", len(self._subscribers))

    async def emit(self, action: str, post: Any) -> None:
        if action not in POST_ACTIONS:
            raise ValueError(f"Unknown post action '{action}'")

        async with self._lock:
            subscribers: List[WebSocket] = list(self._subscribers)

        payload = {"action": action, "post": post}
        stale: List[WebSocket] = []
        for websocket in subscribers:
            if not await send_websocket_json(websocket, payload):
                stale.append(websocket)

        if stale:
            async with self._lock:
                for websocket in stale:
                    self._subscribers.discard(websocket)
            logger.info("Dropped %s unreachable push subscriber(s)", len(stale))

    async def serve(self, websocket: WebSocket) -> None:
        """Hold a subscriber connection open until the client goes away."""

        await self.subscribe(websocket)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        except WebSocketDisconnect:
            pass
        finally:
            await self.unsubscribe(websocket)
            with suppress(Exception):
                if websocket.application_state != WebSocketState.DISCONNECTED:
                    await websocket.close()


__all__ = ["POST_ACTIONS", "PostEventBroadcaster", "send_websocket_json"]
