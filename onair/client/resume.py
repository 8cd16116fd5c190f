"""Playback position cache for reconnecting viewers.

Records live in a client-local key-value namespace keyed by the canonical
media identity, so a re-signed URL for the same file resumes where the old
one stopped. Nothing here is authoritative: a store that cannot be read or
written simply means no resume.
"""

import json
import logging
import math
import os
import tempfile
import threading
import time
from typing import Any, Callable, Iterator, Protocol

from onair.services.timeline import canonical_media_key

logger = logging.getLogger(__name__)

KEY_PREFIX = "onair:resume:"
MIN_RESUME_OFFSET_SEC = 5.0
TAIL_MARGIN_SEC = 3.0
SAVE_INTERVAL_SEC = 10.0


def resume_key(media_ref: str | None) -> str:
    return f"{KEY_PREFIX}{canonical_media_key(media_ref)}"


class ResumeStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def items(self) -> Iterator[tuple[str, str]]: ...


class MemoryResumeStore:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def items(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._data.items()))


class JsonFileResumeStore:
    """One JSON object on disk, rewritten atomically on every change."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Resume store %s unreadable, starting empty: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, data: dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, separators=(",", ":"))
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._save(data)

    def items(self) -> Iterator[tuple[str, str]]:
        with self._lock:
            return iter(list(self._load().items()))


def _finite(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class ResumeTracker:
    def __init__(
        self,
        store: ResumeStore | None = None,
        min_offset: float = MIN_RESUME_OFFSET_SEC,
        tail_margin: float = TAIL_MARGIN_SEC,
        save_interval: float = SAVE_INTERVAL_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else MemoryResumeStore()
        self.min_offset = min_offset
        self.tail_margin = tail_margin
        self.save_interval = save_interval
        self.clock = clock
        self._last_saved: dict[str, float] = {}

    def load(self, media_ref: str | None) -> dict | None:
        try:
            raw = self.store.get(resume_key(media_ref))
        except Exception as exc:
            logger.debug("Resume lookup failed: %s", exc)
            return None
        if not raw:
            return None
        try:
            record = json.loads(raw)
        except json.JSONDecodeError:
            return None
        if not isinstance(record, dict) or _finite(record.get("offsetSeconds")) is None:
            return None
        return record

    def save(self, media_ref: str | None, offset: float, duration: float | None = None) -> bool:
        position = _finite(offset)
        if position is None or position < 0:
            return False
        record = {
            "offsetSeconds": position,
            "durationSeconds": _finite(duration),
            "savedAtEpochMs": int(self.clock() * 1000),
        }
        key = canonical_media_key(media_ref)
        try:
            self.store.set(resume_key(media_ref), json.dumps(record, separators=(",", ":")))
        except Exception as exc:
            logger.debug("Resume save failed: %s", exc)
            return False
        self._last_saved[key] = position
        return True

    def clear(self, media_ref: str | None) -> None:
        self._last_saved.pop(canonical_media_key(media_ref), None)
        try:
            self.store.delete(resume_key(media_ref))
        except Exception as exc:
            logger.debug("Resume clear failed: %s", exc)

    def resume_offset(self, media_ref: str | None, duration: float | None = None) -> float | None:
        """Where playback should seek on start, or None to start from the top."""
        record = self.load(media_ref)
        if record is None:
            return None
        offset = _finite(record.get("offsetSeconds"))
        if offset is None or offset <= self.min_offset:
            return None
        known_duration = _finite(duration)
        if known_duration is None:
            known_duration = _finite(record.get("durationSeconds"))
        if known_duration is not None and offset >= known_duration - self.tail_margin:
            return None
        return offset

    def on_time_update(self, media_ref: str | None, position: float, duration: float | None = None) -> bool:
        current = _finite(position)
        if current is None:
            return False
        last = self._last_saved.get(canonical_media_key(media_ref))
        if last is not None and 0 <= current - last < self.save_interval:
            return False
        return self.save(media_ref, current, duration)

    def on_pause(self, media_ref: str | None, position: float, duration: float | None = None) -> bool:
        return self.save(media_ref, position, duration)

    def on_ended(self, media_ref: str | None) -> None:
        self.clear(media_ref)

    def recent(self, limit: int = 10) -> list[dict]:
        """Most recently saved records first, for a continue-watching row."""
        try:
            entries = list(self.store.items())
        except Exception as exc:
            logger.debug("Resume listing failed: %s", exc)
            return []
        records: list[dict] = []
        for key, raw in entries:
            if not key.startswith(KEY_PREFIX):
                continue
            try:
                record = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(record, dict):
                continue
            records.append({"mediaKey": key[len(KEY_PREFIX):], **record})
        records.sort(key=lambda record: record.get("savedAtEpochMs") or 0, reverse=True)
        return records[:limit]
