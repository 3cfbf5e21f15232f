"""Telemetry event builders: prompt redaction, error truncation, param summaries."""

from __future__ import annotations

import hashlib
from typing import Any, Optional

from .models import PromptEvent, TelemetrySession, ToolEndEvent, ToolStartEvent, as_text

ERROR_MAX_CHARS = 500
PARAM_MAX_CHARS = 100


def redact_prompt(text: str) -> str:
    """One-way digest of a prompt: 64 hex chars of SHA-256."""
    return hashlib.sha256(text.encode("utf-8", errors="surrogatepass")).hexdigest()


def truncate_error(value: Any, limit: int = ERROR_MAX_CHARS) -> str:
    """Coerce to text and keep the first `limit` characters."""
    return as_text(value)[:limit]


def summarize_params(args: Any, max_chars: int = PARAM_MAX_CHARS) -> dict[str, Any]:
    """Replace long string values with "[N chars]" so file bodies never reach the queue."""
    if not isinstance(args, dict):
        return {}
    summary: dict[str, Any] = {}
    for key, value in args.items():
        if isinstance(value, str) and len(value) > max_chars:
            summary[str(key)] = f"[{len(value)} chars]"
        else:
            summary[str(key)] = value
    return summary


def build_prompt_event(session: TelemetrySession, prompt: Any) -> PromptEvent:
    text = as_text(prompt)
    if session.redact_prompts:
        return PromptEvent(
            session_id=session.session_id,
            prompt=redact_prompt(text),
            prompt_length=len(text),
            redacted=True,
        )
    return PromptEvent(
        session_id=session.session_id,
        prompt=text,
        prompt_length=len(text),
        redacted=False,
    )


def build_tool_start_event(
    session: TelemetrySession,
    tool_name: str,
    correlation_id: str,
    tool_args: Any = None,
    max_chars: int = PARAM_MAX_CHARS,
) -> ToolStartEvent:
    return ToolStartEvent(
        session_id=session.session_id,
        tool_name=tool_name,
        correlation_id=correlation_id,
        params=summarize_params(tool_args, max_chars),
    )


def build_tool_end_event(
    session: TelemetrySession,
    tool_name: str,
    correlation_id: str,
    duration_ms: int,
    success: bool = True,
    error: Optional[Any] = None,
    result: Optional[Any] = None,
) -> ToolEndEvent:
    """End event; errors and results are both cut to ERROR_MAX_CHARS."""
    return ToolEndEvent(
        session_id=session.session_id,
        tool_name=tool_name,
        correlation_id=correlation_id,
        duration_ms=duration_ms,
        success=success,
        error=None if success else truncate_error(error),
        result=truncate_error(result) if success and result else None,
    )
