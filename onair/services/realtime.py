import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Iterable

from fastapi import WebSocket

logger = logging.getLogger(__name__)

_CHANNEL_PATH_RE = re.compile(r"^/channels/(\d+)(?:/|$)")


def channel_hint(path: str, query: dict | None = None) -> int | None:
    """Channel a mutating request touched, when the URL says so."""
    match = _CHANNEL_PATH_RE.match(path or "")
    if match:
        return int(match.group(1))
    for key in ("channel_id", "channelId", "id"):
        raw = str((query or {}).get(key) or "").strip()
        if raw.isdigit() and (key != "id" or path.rstrip("/") == "/channels"):
            return int(raw)
    return None


class RealtimeHub:
    """Fan-out of schedule change notices to connected viewers.

    A viewer may narrow its feed with ``{"type": "subscribe", "channels": [..]}``;
    until then it hears about every channel. Events without a channel (a
    publish whose channel is only in the body, say) reach everyone. The
    revision counter lets a reconnecting viewer tell whether it missed anything.
    """

    def __init__(self) -> None:
        self._clients: dict[WebSocket, set[int] | None] = {}
        self._lock = asyncio.Lock()
        self._revision = 0

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients[websocket] = None
        await websocket.send_text(self._encode("hello", {"clients": len(self._clients)}))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.pop(websocket, None)

    async def subscribe(self, websocket: WebSocket, channel_ids: Iterable[Any] | None) -> set[int] | None:
        wanted = None
        if channel_ids is not None:
            wanted = {int(cid) for cid in channel_ids if str(cid).strip().isdigit()}
        async with self._lock:
            if websocket in self._clients:
                self._clients[websocket] = wanted
        return wanted

    async def handle_message(self, websocket: WebSocket, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            return
        if not isinstance(message, dict):
            return
        kind = message.get("type")
        if kind == "subscribe":
            wanted = await self.subscribe(websocket, message.get("channels"))
            await websocket.send_text(
                self._encode("subscribed", {"channels": sorted(wanted) if wanted is not None else None})
            )
        elif kind == "ping":
            await websocket.send_text(self._encode("pong", {}))

    def _encode(self, event_type: str, payload: dict[str, Any]) -> str:
        return json.dumps(
            {
                "type": event_type,
                "revision": self._revision,
                "payload": payload,
                "ts": datetime.now(timezone.utc).isoformat(),
            }
        )

    async def publish(self, event_type: str, payload: dict[str, Any] | None = None, channel_id: int | None = None) -> int:
        self._revision += 1
        message = self._encode(event_type, payload or {})
        async with self._lock:
            targets = [
                client
                for client, wanted in self._clients.items()
                if wanted is None or channel_id is None or channel_id in wanted
            ]

        stale: list[WebSocket] = []
        for client in targets:
            try:
                await client.send_text(message)
            except Exception:
                stale.append(client)

        if stale:
            logger.debug("Dropping %d stale realtime clients", len(stale))
            async with self._lock:
                for client in stale:
                    self._clients.pop(client, None)
        return self._revision

    async def schedule_changed(self, path: str, method: str, channel_id: int | None = None) -> int:
        return await self.publish(
            "schedule_changed",
            {"path": path, "method": method, "channel_id": channel_id},
            channel_id=channel_id,
        )

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def client_count(self) -> int:
        return len(self._clients)


hub = RealtimeHub()
