"""Correlation store: pairs a tool's start and end hooks.

One record per tool name, not per invocation. A second start for the same
tool before its end overwrites the first (latest wins); overlapping calls to
the same tool are not distinguished.

Storage layout: <correlation_dir>/tool-correlation-<sanitized-name>.json
"""

from __future__ import annotations

import logging
import os
import re
import time
import uuid
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from . import files
from .models import CorrelationRecord

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")
_PREFIX = "tool-correlation-"


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def sanitize_tool_name(tool_name: str) -> str:
    """Filesystem-safe key: every non-alphanumeric character becomes '_'."""
    return _UNSAFE_CHARS.sub("_", tool_name or "")


class CorrelationStore:
    def __init__(self, directory: Path, clock: Optional[Callable[[], int]] = None):
        self.directory = Path(directory)
        self._clock = clock or now_ms

    def _record_path(self, tool_name: str) -> Path:
        return self.directory / f"{_PREFIX}{sanitize_tool_name(tool_name)}.json"

    def begin(self, tool_name: str) -> str:
        """Record a start for tool_name and return its fresh correlation id."""
        record = CorrelationRecord(
            tool_name=tool_name,
            correlation_id=str(uuid.uuid4()),
            start_time_ms=self._clock(),
        )
        files.write_json_atomic(
            self._record_path(tool_name), record.model_dump(by_alias=True)
        )
        return record.correlation_id

    def end(self, tool_name: str) -> tuple[str, int]:
        """Consume the start record for tool_name.

        Returns (correlation_id, duration_ms). Without a usable start record
        (hook installed mid-session, corrupt file, already consumed) this
        returns ("", 0) instead of failing.
        """
        record = self._claim(self._record_path(tool_name))
        if record is None:
            logger.debug("No start record for %s", tool_name)
            return "", 0
        duration = self._clock() - record.start_time_ms
        return record.correlation_id, max(duration, 0)

    def peek(self, tool_name: str) -> Optional[CorrelationRecord]:
        return self._read(self._record_path(tool_name))

    def outstanding(self) -> list[CorrelationRecord]:
        """Start records that never saw a matching end."""
        records = []
        for path in sorted(self.directory.glob(f"{_PREFIX}*.json")):
            record = self._read(path)
            if record is not None:
                records.append(record)
        return records

    def _claim(self, path: Path) -> Optional[CorrelationRecord]:
        # Renaming first makes the read-and-delete exactly-once across
        # concurrent end hooks: only one rename of the same source succeeds.
        claimed = path.with_name(f".{path.name}.{os.getpid()}.{uuid.uuid4().hex[:8]}.claim")
        try:
            os.replace(path, claimed)
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not claim %s: %s", path.name, exc)
            return None
        try:
            return self._read(claimed)
        finally:
            files.remove(claimed)

    def _read(self, path: Path) -> Optional[CorrelationRecord]:
        data = files.read_json(path)
        if data is None:
            return None
        try:
            return CorrelationRecord.model_validate(data)
        except ValidationError:
            logger.warning("Discarding corrupt correlation record %s", path.name)
            return None
