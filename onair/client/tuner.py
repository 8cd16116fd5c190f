"""Viewer-side live tuner.

Keeps one ``ChannelView`` per channel id and moves it through

    LOADING -> {LIVE, NEXT_SCHEDULED, STALE_FALLBACK, STANDBY}

on every resolution. Triggers are the initial tune, natural end of the
playing media, and a periodic poll that only runs while the surface is
visible. Overlapping triggers for one channel share a single in-flight
resolution, and a result that lands after the viewer switched channel is
dropped. The player is only reloaded when the program identity (row id plus
canonical media key) actually changes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from onair.services.timeline import canonical_media_key, program_payload, standby_program, utc_now

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SEC = 60.0


class TunerState(str, Enum):
    LOADING = "loading"
    LIVE = "live"
    NEXT_SCHEDULED = "next_scheduled"
    STALE_FALLBACK = "stale_fallback"
    STANDBY = "standby"


STATE_BY_KIND = {
    "live_feed": TunerState.LIVE,
    "live": TunerState.LIVE,
    "next_scheduled": TunerState.NEXT_SCHEDULED,
    "stale_fallback": TunerState.STALE_FALLBACK,
    "standby": TunerState.STANDBY,
}


def program_identity(program: dict | None) -> tuple[Any, str] | None:
    if not program:
        return None
    return program.get("id"), canonical_media_key(program.get("media_ref"))


@dataclass
class ChannelView:
    channel_id: Any
    state: TunerState = TunerState.LOADING
    kind: str | None = None
    program: dict | None = None
    next: dict | None = None
    error: str | None = None
    reloads: int = 0
    history: list = field(default_factory=list)
    ended_identity: tuple[Any, str] | None = None

    @property
    def identity(self) -> tuple[Any, str] | None:
        return program_identity(self.program)


class ChannelTuner:
    def __init__(
        self,
        resolve: Callable[[Any], Awaitable[dict]],
        poll_interval: float = DEFAULT_POLL_INTERVAL_SEC,
        on_reload: Callable[[ChannelView], None] | None = None,
    ) -> None:
        self._resolve = resolve
        self.poll_interval = poll_interval
        self.on_reload = on_reload
        self.channel_id: Any = None
        self.visible = True
        self._views: dict[Any, ChannelView] = {}
        self._inflight: dict[Any, asyncio.Future] = {}
        self._poll_task: asyncio.Task | None = None

    def view(self, channel_id: Any) -> ChannelView | None:
        return self._views.get(channel_id)

    @property
    def current(self) -> ChannelView | None:
        if self.channel_id is None:
            return None
        return self._views.get(self.channel_id)

    async def tune(self, channel_id: Any) -> ChannelView | None:
        self.channel_id = channel_id
        view = self._views.setdefault(channel_id, ChannelView(channel_id))
        view.state = TunerState.LOADING
        view.history.append(TunerState.LOADING)
        return await self.refresh("initial")

    async def media_ended(self) -> ChannelView | None:
        return await self.refresh("ended")

    def set_visible(self, visible: bool) -> None:
        self.visible = visible

    async def refresh(self, reason: str = "poll") -> ChannelView | None:
        channel_id = self.channel_id
        if channel_id is None:
            return None
        pending = self._inflight.get(channel_id)
        if pending is not None and not pending.done():
            logger.debug("Channel %s already resolving, joining (%s)", channel_id, reason)
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._resolve_and_apply(channel_id, reason))
        self._inflight[channel_id] = task

        def _forget(done: asyncio.Future, cid: Any = channel_id) -> None:
            if self._inflight.get(cid) is done:
                self._inflight.pop(cid, None)

        task.add_done_callback(_forget)
        return await asyncio.shield(task)

    async def _fetch(self, channel_id: Any) -> dict:
        try:
            payload = await self._resolve(channel_id)
        except Exception as exc:
            logger.warning("Resolution for channel %s failed, falling back to standby: %s", channel_id, exc)
            return {
                "kind": "standby",
                "program": program_payload(standby_program(channel_id, utc_now())),
                "next": None,
                "error": str(exc) or exc.__class__.__name__,
            }
        if not isinstance(payload, dict) or not payload.get("program"):
            return {
                "kind": "standby",
                "program": program_payload(standby_program(channel_id, utc_now())),
                "next": None,
                "error": "Empty resolution",
            }
        return payload

    async def _resolve_and_apply(self, channel_id: Any, reason: str) -> ChannelView | None:
        payload = await self._fetch(channel_id)
        if self.channel_id != channel_id:
            logger.debug("Dropping resolution for channel %s, viewer moved to %s", channel_id, self.channel_id)
            return None
        return self._apply(self._views.setdefault(channel_id, ChannelView(channel_id)), payload, reason)

    def _apply(self, view: ChannelView, payload: dict, reason: str) -> ChannelView:
        program = payload.get("program")
        kind = payload.get("kind") or "standby"
        upcoming = payload.get("next")

        if reason == "ended" and program_identity(program) == view.identity:
            # The finished show still passes the drift window; move on rather than replay it.
            view.ended_identity = view.identity
            if upcoming:
                program, kind, upcoming = upcoming, "next_scheduled", None
            else:
                program, kind = program_payload(standby_program(view.channel_id, utc_now())), "standby"
        elif view.ended_identity is not None:
            if program_identity(program) == view.ended_identity:
                # Server still resolves the show that already finished here; keep what replaced it.
                view.error = payload.get("error")
                view.history.append(view.state)
                return view
            view.ended_identity = None

        changed = program_identity(program) != view.identity
        view.program = program
        view.kind = kind
        view.next = upcoming
        view.error = payload.get("error")
        view.state = STATE_BY_KIND.get(kind, TunerState.STANDBY)
        view.history.append(view.state)
        if changed:
            view.reloads += 1
            logger.info("Channel %s now %s: %s", view.channel_id, view.state.value, (program or {}).get("title"))
            if self.on_reload is not None:
                self.on_reload(view)
        return view

    async def run_polling(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            if self.visible and self.channel_id is not None:
                await self.refresh("poll")

    def start_polling(self) -> asyncio.Task:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.ensure_future(self.run_polling())
        return self._poll_task

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
