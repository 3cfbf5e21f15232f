"""Session management: the writers behind the state files the hooks read.

Workflow state machine: idle -> analyzing -> implementing -> testing ->
committing -> reviewing -> done. Any recognized state may be entered from any
other; the admission policy, not this module, decides what each state allows.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from .config import WorkflowConfig
from .correlation import CorrelationStore
from .event_queue import EventQueue
from .models import SessionState, TelemetrySession, WorkflowState, utc_now_iso
from .registry import SessionRegistry

logger = logging.getLogger(__name__)

VALID_STATES = [s.value for s in SessionState]


class WorkflowError(ValueError):
    """Invalid session-management request (unknown state, no session, ...)."""


def session_age_hours(session: TelemetrySession) -> Optional[float]:
    if not session.started_at:
        return None
    try:
        started = datetime.fromisoformat(session.started_at)
    except ValueError:
        return None
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    return (datetime.now(timezone.utc) - started).total_seconds() / 3600


def session_is_fresh(session: TelemetrySession, max_age_hours: int) -> bool:
    age = session_age_hours(session)
    return age is not None and age < max_age_hours


# =============================================================================
# Telemetry sessions
# =============================================================================


def start_telemetry_session(
    config: WorkflowConfig,
    ticket_id: Optional[str] = None,
    redact_prompts: bool = False,
) -> dict:
    """Write a session descriptor, reusing a still-fresh one.

    Returns {"session": {...}, "resumed": bool}.
    """
    registry = SessionRegistry(config)
    existing = registry.resolve_session()
    if existing is not None and session_is_fresh(existing, config.setting_int("sessionMaxAgeHours")):
        logger.info("Telemetry session %s still active", existing.session_id)
        return {"session": existing.model_dump(by_alias=True, exclude_none=True), "resumed": True}

    session = TelemetrySession(
        session_id=str(uuid.uuid4()),
        redact_prompts=redact_prompts,
        ticket_id=ticket_id or registry.resolve_active_ticket(),
        started_at=utc_now_iso(),
    )
    registry.save_session(session)
    logger.info("Started telemetry session %s", session.session_id)
    return {"session": session.model_dump(by_alias=True, exclude_none=True), "resumed": False}


def end_telemetry_session(config: WorkflowConfig, session_id: Optional[str] = None) -> dict:
    """Close the active telemetry session.

    The queue is left in place for the uploader. Returns the session id, the
    number of queued events and the tools whose start never saw an end.
    """
    registry = SessionRegistry(config)
    session = registry.resolve_session()
    if session is None:
        raise WorkflowError("No active telemetry session for this project.")
    if session_id and session_id != session.session_id:
        raise WorkflowError(
            f"Session '{session_id}' is not the active session ('{session.session_id}')."
        )

    unmatched = [r.tool_name for r in CorrelationStore(config.correlation_dir).outstanding()]
    queued = EventQueue(config.queue_path).count()
    registry.clear_session()
    logger.info("Ended telemetry session %s (%d queued events)", session.session_id, queued)
    return {
        "sessionId": session.session_id,
        "queuedEvents": queued,
        "unmatchedTools": unmatched,
    }


# =============================================================================
# Workflow sessions
# =============================================================================


def create_workflow_session(config: WorkflowConfig, ticket_id: str) -> WorkflowState:
    """Bind this project to a ticket in the 'idle' state."""
    if not ticket_id or not ticket_id.strip():
        raise WorkflowError("ticket_id is required.")
    registry = SessionRegistry(config)
    now = utc_now_iso()
    state = WorkflowState(
        ticket_id=ticket_id.strip(),
        session_id=uuid.uuid4().hex[:12],
        current_state=SessionState.IDLE.value,
        state_history=[SessionState.IDLE.value],
        started_at=now,
    )
    registry.save_workflow_state(state)
    registry.save_ticket_pointer(state.ticket_id)
    # A review from an earlier ticket must not unlock pushes for this one.
    registry.clear_review_marker()
    logger.info("Created workflow session %s for ticket %s", state.session_id, state.ticket_id)
    return state


def update_workflow_state(
    config: WorkflowConfig, state: str, session_id: Optional[str] = None
) -> dict:
    """Transition the current workflow session. Returns previous and new state."""
    if state not in VALID_STATES:
        raise WorkflowError(
            f"Unknown state '{state}'. Valid states: {', '.join(VALID_STATES)}."
        )
    registry = SessionRegistry(config)
    current = registry.load_workflow_state()
    if current is None:
        raise WorkflowError("No workflow session for this project. Call create_session first.")
    if session_id and session_id != current.session_id:
        raise WorkflowError(
            f"Session '{session_id}' is not the current session ('{current.session_id}')."
        )

    previous = current.current_state
    current.current_state = state
    current.state_history.append(state)
    registry.save_workflow_state(current)
    logger.info("Workflow session %s: %s -> %s", current.session_id, previous, state)
    return {
        "sessionId": current.session_id,
        "ticketId": current.ticket_id,
        "previousState": previous,
        "currentState": state,
    }


def complete_workflow_session(config: WorkflowConfig) -> dict:
    """Finish the ticket: remove the state file, pointer and review marker."""
    registry = SessionRegistry(config)
    current = registry.load_workflow_state()
    if current is None:
        raise WorkflowError("No workflow session for this project.")

    history = current.state_history + [SessionState.DONE.value]
    registry.clear_workflow_state()
    registry.clear_ticket_pointer()
    registry.clear_review_marker()
    logger.info("Completed workflow session %s", current.session_id)
    return {
        "sessionId": current.session_id,
        "ticketId": current.ticket_id,
        "stateHistory": history,
    }


def mark_review_completed(config: WorkflowConfig) -> dict:
    timestamp = SessionRegistry(config).mark_review_completed()
    logger.info("Review marker written at %s", config.review_marker_path)
    return {"marker": str(config.review_marker_path), "timestamp": timestamp}


def workflow_status(config: WorkflowConfig) -> dict:
    """Everything the hooks would see for this project right now."""
    registry = SessionRegistry(config)
    session = registry.resolve_session()
    state = registry.load_workflow_state()
    return {
        "projectPath": str(config.project_dir),
        "activeTicket": registry.resolve_active_ticket(),
        "workflowState": state.model_dump(by_alias=True, exclude_none=True) if state else None,
        "reviewCompleted": registry.review_completed(),
        "telemetrySession": session.model_dump(by_alias=True, exclude_none=True) if session else None,
        "queue": EventQueue(config.queue_path).summary(),
    }
