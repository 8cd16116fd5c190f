import logging
import os

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = (os.getenv("ONAIR_BASE_URL", "http://127.0.0.1:8000") or "").strip().rstrip("/")
REQUEST_TIMEOUT_SEC = float(os.getenv("ONAIR_CLIENT_TIMEOUT_SEC", "8"))


class ScheduleClient:
    """Viewer-side access to the resolution endpoints.

    Errors are raised, not retried: the tuner turns any failure into standby.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str | None = None,
        timeout: float = REQUEST_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Cache-Control": "no-cache"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def now_playing(self, channel_id) -> dict:
        response = await self._client.get(f"/channels/{channel_id}/now")
        response.raise_for_status()
        return response.json()

    async def guide(self, look_back_hours: float = 6, look_ahead_hours: float = 6) -> dict:
        response = await self._client.get(
            "/guide",
            params={"look_back_hours": look_back_hours, "look_ahead_hours": look_ahead_hours},
        )
        response.raise_for_status()
        return response.json()

    async def server_time(self) -> dict:
        response = await self._client.get("/now")
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ScheduleClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
