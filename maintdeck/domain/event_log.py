"""Operator event log.

A bounded, newest-first list of operator-facing events. Entries are forwarded
to :mod:`logging`, persisted to a JSON file and pushed to live subscribers
(the WebSocket endpoint). :meth:`EventLog.record` never raises.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable

from maintdeck.core.time_utils import Clock, format_timestamp, now_local

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 100

_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

Subscriber = Callable[[list[dict[str, Any]]], None]


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    message: str
    type: str = "info"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class EventLog:
    """Bounded operator log with JSON persistence and subscriber fan-out."""

    def __init__(
        self,
        path: str | Path | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Clock = now_local,
    ) -> None:
        self._path = Path(path) if path else None
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: list[LogEntry] = []
        self._subscribers: list[Subscriber] = []

    def load(self) -> None:
        """Load persisted entries. Missing or malformed files start an empty log."""
        if self._path is None or not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
            if not isinstance(data, list):
                raise ValueError("event log JSON root must be an array")  # noqa: TRY004
            entries = [
                LogEntry(
                    timestamp=str(item["timestamp"]),
                    message=str(item["message"]),
                    type=str(item.get("type", "info")),
                )
                for item in data
                if isinstance(item, dict) and "timestamp" in item and "message" in item
            ]
        except (OSError, ValueError, KeyError) as exc:
            logger.warning("Failed to load event log %s: %s", self._path, exc)
            return
        with self._lock:
            self._entries = entries[: self._max_entries]
        logger.debug("Loaded %d event log entries from %s", len(self._entries), self._path)

    def entries(self) -> list[dict[str, Any]]:
        """Snapshot of the log, newest first."""
        with self._lock:
            return [entry.to_dict() for entry in self._entries]

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback receiving the full snapshot after each record.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.remove(callback)

        return _unsubscribe

    def record(self, message: str, level: str = "info") -> None:
        """Record an operator event. Never raises."""
        try:
            self._record(message, level)
        except Exception:
            logger.exception("Failed to record event %r", message)

    def _record(self, message: str, level: str) -> None:
        logger.log(_LEVELS.get(level, logging.INFO), "%s", message)

        entry = LogEntry(timestamp=format_timestamp(self._clock()), message=message, type=level)
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self._max_entries :]

        self._schedule_persist()

        snapshot = self.entries()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.warning("Event log subscriber %r failed", callback, exc_info=True)

    def _schedule_persist(self) -> None:
        if self._path is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._persist()
            return
        future = loop.run_in_executor(None, self._persist)
        future.add_done_callback(_log_future_error)

    def _persist(self) -> None:
        """Write the current entries atomically. Failures are logged only."""
        if self._path is None:
            return
        with self._lock:
            payload = [entry.to_dict() for entry in self._entries]
            tmp_path: Path | None = None
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w", dir=self._path.parent, delete=False, encoding="utf-8", suffix=".tmp"
                ) as tf:
                    tmp_path = Path(tf.name)
                    json.dump(payload, tf, ensure_ascii=False, indent=2)
                    tf.flush()
                    with contextlib.suppress(OSError):
                        os.fsync(tf.fileno())
                tmp_path.replace(self._path)
            except OSError as exc:
                logger.warning("Failed to persist event log to %s: %s", self._path, exc)
                if tmp_path is not None:
                    with contextlib.suppress(OSError):
                        tmp_path.unlink()


def _log_future_error(future: asyncio.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("Event log persistence failed: %s", exc)
