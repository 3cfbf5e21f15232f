"""Append-only telemetry queue. TAP guarantee: enqueue never raises.

Each event is one JSON line appended with a single O_APPEND write, so lines
from concurrent hook processes never interleave. If the append fails, the
calling hook is unaffected: the failure is logged and dropped.

Draining the queue to a backend is somebody else's job; this module only
appends and reports how many events are waiting.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterator, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Event = Union[BaseModel, dict]


def _event_dict(event: Event) -> dict:
    if isinstance(event, BaseModel):
        return event.model_dump(by_alias=True, exclude_none=True)
    return dict(event)


def _event_kind(record: dict) -> str:
    return str(record.get("eventType") or record.get("event") or "unknown")


class EventQueue:
    def __init__(self, path: Path):
        self.path = Path(path)

    def enqueue(self, event: Event) -> bool:
        """Append one event. Returns True if the line was written.

        Events without a sessionId or timestamp are rejected.
        """
        try:
            record = _event_dict(event)
            if not record.get("sessionId") or not record.get("timestamp"):
                logger.warning("Dropping %s event without sessionId/timestamp", _event_kind(record))
                return False
            line = json.dumps(record, separators=(",", ":"), ensure_ascii=False) + "\n"
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                os.write(fd, line.encode("utf-8", errors="replace"))
            finally:
                os.close(fd)
        except Exception as exc:
            logger.warning("Failed to queue telemetry event: %s", exc)
            return False
        logger.debug("Queued %s event", _event_kind(record))
        return True

    def count(self) -> int:
        """Number of queued events; 0 when the queue does not exist yet."""
        try:
            with open(self.path, "rb") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0

    def iter_events(self) -> Iterator[dict]:
        """Parsed events in append order, skipping lines that do not parse."""
        try:
            f = open(self.path, "r", encoding="utf-8", errors="replace")
        except OSError:
            return
        with f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(record, dict):
                    yield record

    def summary(self) -> dict:
        """{"total": n, "by_type": {...}} for status reporting."""
        by_type: dict[str, int] = {}
        total = 0
        for record in self.iter_events():
            kind = _event_kind(record)
            by_type[kind] = by_type.get(kind, 0) + 1
            total += 1
        return {"total": total, "by_type": by_type}
