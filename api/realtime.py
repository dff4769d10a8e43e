from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

from workout_core.services.cues import CueEvent, CueSink

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self) -> None:
        self.connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, channel: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.connections[channel].add(websocket)

    def disconnect(self, channel: str, websocket: WebSocket) -> None:
        if channel in self.connections:
            self.connections[channel].discard(websocket)
            if not self.connections[channel]:
                del self.connections[channel]

    def subscribers(self, channel: str) -> int:
        return len(self.connections.get(channel, ()))

    async def broadcast(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        if channel not in self.connections:
            return
        msg = json.dumps({"event": event, "payload": payload}, default=str)
        stale: list[WebSocket] = []
        for ws in list(self.connections[channel]):
            try:
                await ws.send_text(msg)
            except Exception:
                stale.append(ws)
        for ws in stale:
            self.disconnect(channel, ws)


class BroadcastCueSink(CueSink):
    """Pushes cue events to every websocket listening on the session's channel."""

    def __init__(self, manager: ConnectionManager, channel: str) -> None:
        self.manager = manager
        self.channel = channel
        self._pending: set[asyncio.Task] = set()

    def emit(self, event: CueEvent, payload: dict[str, Any]) -> None:
        if not self.manager.subscribers(self.channel):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; dropping cue %s for %s", event.value, self.channel)
            return
        task = loop.create_task(self.manager.broadcast(self.channel, event.value, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def cleanup(self) -> None:
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()


manager = ConnectionManager()
