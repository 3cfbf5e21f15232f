"""Pydantic models for sessions, workflow state, telemetry events and hook I/O."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    IMPLEMENTING = "implementing"
    TESTING = "testing"
    COMMITTING = "committing"
    REVIEWING = "reviewing"
    DONE = "done"


# States in which write-class tools are admitted
WRITE_STATES = frozenset(
    {SessionState.IMPLEMENTING.value, SessionState.TESTING.value, SessionState.COMMITTING.value}
)


# =============================================================================
# Persisted records
# =============================================================================


def _lenient_text(value: Any) -> str:
    """Hand-edited state files: null or odd-typed fields read as empty, numbers as text."""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


class TelemetrySession(BaseModel):
    """Session descriptor written by the telemetry start action."""

    session_id: str = Field(alias="sessionId")
    redact_prompts: bool = Field(default=False, alias="redactPrompts")
    ticket_id: Optional[str] = Field(default=None, alias="ticketId")
    started_at: Optional[str] = Field(default=None, alias="startedAt")

    model_config = {"populate_by_name": True}


class WorkflowState(BaseModel):
    """Per-ticket state record read by the admission policy."""

    ticket_id: str = Field(default="", alias="ticketId")
    session_id: str = Field(default="", alias="sessionId")
    current_state: str = Field(default="", alias="currentState")
    state_history: list[str] = Field(default_factory=list, alias="stateHistory")
    started_at: Optional[str] = Field(default=None, alias="startedAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    model_config = {"populate_by_name": True}

    @field_validator("ticket_id", "session_id", "current_state", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return _lenient_text(value)

    @field_validator("started_at", "updated_at", mode="before")
    @classmethod
    def _timestamp_or_none(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @field_validator("state_history", mode="before")
    @classmethod
    def _history_or_empty(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [v for v in value if isinstance(v, str)]

    @property
    def allows_writes(self) -> bool:
        return self.current_state in WRITE_STATES


class TicketPointer(BaseModel):
    """Home-scoped "current ticket" pointer, honored only inside its project."""

    project_path: str = Field(default="", alias="projectPath")
    ticket_id: str = Field(default="", alias="ticketId")
    started_at: Optional[str] = Field(default=None, alias="startedAt")

    model_config = {"populate_by_name": True}

    @field_validator("project_path", "ticket_id", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return _lenient_text(value)

    @field_validator("started_at", mode="before")
    @classmethod
    def _timestamp_or_none(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None


class CorrelationRecord(BaseModel):
    tool_name: str = Field(default="", alias="toolName")
    correlation_id: str = Field(alias="correlationId")
    start_time_ms: int = Field(alias="startTimeMillis")

    model_config = {"populate_by_name": True}


# =============================================================================
# Telemetry events (one JSON line each in the queue)
# =============================================================================


class PromptEvent(BaseModel):
    session_id: str = Field(alias="sessionId")
    event_type: Literal["prompt"] = Field(default="prompt", alias="eventType")
    prompt: str
    prompt_length: int = Field(alias="promptLength")
    redacted: bool = False
    timestamp: str = Field(default_factory=utc_now_iso)

    model_config = {"populate_by_name": True}


class ToolStartEvent(BaseModel):
    session_id: str = Field(alias="sessionId")
    event: Literal["start"] = "start"
    tool_name: str = Field(alias="toolName")
    correlation_id: str = Field(alias="correlationId")
    params: dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=utc_now_iso)

    model_config = {"populate_by_name": True}


class ToolEndEvent(BaseModel):
    session_id: str = Field(alias="sessionId")
    event: Literal["end"] = "end"
    tool_name: str = Field(alias="toolName")
    correlation_id: str = Field(default="", alias="correlationId")
    duration_ms: int = Field(default=0, alias="durationMs")
    success: bool = True
    error: Optional[str] = None
    result: Optional[str] = None
    timestamp: str = Field(default_factory=utc_now_iso)

    model_config = {"populate_by_name": True}


# =============================================================================
# Hook I/O
# =============================================================================


def _first(data: dict, *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return ""


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


class HookInput(BaseModel):
    """Normalized hook payload.

    Hosts disagree on field names (Copilot CLI sends toolName/toolArgs with
    toolArgs as a JSON string, Claude Code sends tool_name/tool_input, Cursor
    sends tool/params). Every field defaults to empty; nothing here raises
    on a malformed payload.
    """

    tool_name: str = ""
    tool_args: dict[str, Any] = Field(default_factory=dict)
    prompt: str = ""
    error: str = ""
    result: str = ""
    cwd: str = ""
    session_id: str = ""
    hook_event_name: str = ""

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> dict:
        if not isinstance(data, dict):
            return {}
        return {
            "tool_name": _first(data, "toolName", "tool_name", "tool", "name"),
            "tool_args": _first(data, "toolArgs", "tool_input", "params", "input"),
            "prompt": _first(data, "prompt", "user_prompt"),
            "error": _first(data, "error", "message"),
            "result": _first(data, "result", "output", "tool_response"),
            "cwd": _first(data, "cwd"),
            "session_id": _first(data, "sessionId", "session_id"),
            "hook_event_name": _first(data, "hook_event_name", "hookEventName"),
        }

    @field_validator("tool_args", mode="before")
    @classmethod
    def _parse_args(cls, value: Any) -> dict:
        if isinstance(value, str):
            try:
                value = json.loads(value) if value.strip() else {}
            except json.JSONDecodeError:
                return {}
        return value if isinstance(value, dict) else {}

    @field_validator(
        "tool_name", "prompt", "error", "result", "cwd", "session_id", "hook_event_name",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return as_text(value)

    @classmethod
    def parse(cls, raw: str) -> "HookInput":
        """Parse raw stdin text; invalid JSON gives an empty payload."""
        try:
            data = json.loads(raw) if raw and raw.strip() else {}
        except json.JSONDecodeError:
            data = {}
        return cls.model_validate(data)


class AdmissionDecision(BaseModel):
    permission_decision: Literal["allow", "deny"] = Field(alias="permissionDecision")
    reason: Optional[str] = None

    model_config = {"populate_by_name": True}

    @classmethod
    def allow(cls) -> "AdmissionDecision":
        return cls(permission_decision="allow")

    @classmethod
    def deny(cls, reason: str) -> "AdmissionDecision":
        return cls(permission_decision="deny", reason=reason)

    @property
    def allowed(self) -> bool:
        return self.permission_decision == "allow"

    def to_output(self) -> dict:
        """Hook stdout payload: {"permissionDecision": ..., "reason": ...}."""
        return self.model_dump(by_alias=True, exclude_none=True)
