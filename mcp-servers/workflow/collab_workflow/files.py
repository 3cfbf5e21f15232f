"""Atomic JSON file helpers shared by the registry and the correlation store.

Hook processes run concurrently without locks. Writers go through a temp
file in the same directory followed by os.replace, so readers see either the
old record or the new one, never a partial file.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Optional


def read_json(path: Path) -> Optional[dict]:
    """Read a JSON object; None when missing, unreadable, malformed or not an object."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def write_json_atomic(path: Path, data: dict) -> None:
    """Create-or-replace path with data. Raises OSError on failure."""
    write_text_atomic(path, json.dumps(data, indent=2) + "\n")


def write_text_atomic(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def remove(path: Path) -> bool:
    """Delete path if present. Returns True if a file was removed."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
