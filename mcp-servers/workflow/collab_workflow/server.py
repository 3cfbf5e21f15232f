"""Workflow MCP server: telemetry sessions and ticket workflow state for agents.

The hooks only read the files these tools write. Every tool takes the
project path it acts on; an empty path means the server's project.
"""

import logging
import os
from typing import Optional

from fastmcp import FastMCP

from .config import WorkflowConfig, resolve_project_dir
from .models import HookInput
from .policy import classify_action, decide
from .registry import SessionRegistry
from .sessions import (
    WorkflowError,
    complete_workflow_session,
    create_workflow_session,
    end_telemetry_session,
    mark_review_completed as write_review_marker,
    start_telemetry_session,
    update_workflow_state,
    workflow_status as read_workflow_status,
)

logger = logging.getLogger(__name__)

mcp = FastMCP("Collab Workflow")


def _config(project_path: str) -> WorkflowConfig:
    return WorkflowConfig(project_dir=resolve_project_dir(project_path))


@mcp.tool()
def start_telemetry(
    project_path: str = "",
    ticket_id: Optional[str] = None,
    redact_prompts: bool = False,
) -> dict:
    """Begin recording hook telemetry for this project.

    Writes .claude/telemetry-session.json. A session started less than
    sessionMaxAgeHours ago is resumed rather than replaced.

    Args:
        project_path: Project root. Defaults to the server's project.
        ticket_id: Ticket to attribute events to. Defaults to the active ticket.
        redact_prompts: Store a SHA-256 digest instead of prompt text.

    Returns:
        {session: {sessionId, redactPrompts, ticketId, startedAt}, resumed}
    """
    return start_telemetry_session(_config(project_path), ticket_id, redact_prompts)


@mcp.tool()
def end_telemetry(project_path: str = "", session_id: Optional[str] = None) -> dict:
    """Stop recording telemetry. Queued events are left for upload.

    Returns:
        {sessionId, queuedEvents, unmatchedTools} or {error}
    """
    try:
        return end_telemetry_session(_config(project_path), session_id)
    except WorkflowError as exc:
        return {"error": str(exc)}


@mcp.tool()
def create_session(ticket_id: str, project_path: str = "") -> dict:
    """Start a workflow session for a ticket, in the 'idle' state.

    Also points ~/.collab-workflow/current-ticket.json at this project and
    clears any review marker left from an earlier ticket.
    """
    try:
        state = create_workflow_session(_config(project_path), ticket_id)
    except WorkflowError as exc:
        return {"error": str(exc)}
    return state.model_dump(by_alias=True, exclude_none=True)


@mcp.tool()
def update_session_state(
    state: str,
    project_path: str = "",
    session_id: Optional[str] = None,
) -> dict:
    """Move the workflow session to a new state.

    Args:
        state: One of: idle, analyzing, implementing, testing, committing, reviewing, done.
        project_path: Project root. Defaults to the server's project.
        session_id: If given, must match the current session.

    Returns:
        {sessionId, ticketId, previousState, currentState} or {error}
    """
    try:
        return update_workflow_state(_config(project_path), state, session_id)
    except WorkflowError as exc:
        return {"error": str(exc)}


@mcp.tool()
def complete_session(project_path: str = "") -> dict:
    """Finish the ticket and remove its workflow state, pointer and review marker."""
    try:
        return complete_workflow_session(_config(project_path))
    except WorkflowError as exc:
        return {"error": str(exc)}


@mcp.tool()
def mark_review_completed(project_path: str = "") -> dict:
    """Record that review is done; unblocks git push and gh pr create."""
    return write_review_marker(_config(project_path))


@mcp.tool()
def workflow_status(project_path: str = "") -> dict:
    """Active ticket, workflow state, review marker, telemetry session and queue size."""
    return read_workflow_status(_config(project_path))


@mcp.tool()
def check_action(
    tool_name: str,
    tool_args: Optional[dict] = None,
    project_path: str = "",
) -> dict:
    """Dry-run the admission policy for a tool call without recording anything.

    Returns:
        {permissionDecision: "allow"|"deny", reason?}
    """
    payload = HookInput.model_validate({"toolName": tool_name, "toolArgs": tool_args or {}})
    registry = SessionRegistry(_config(project_path))
    action = classify_action(payload.tool_name, payload.tool_args)
    return decide(action, registry.policy_context()).to_output()


def main() -> None:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    transport = os.environ.get("MCP_TRANSPORT", "stdio")
    logger.info("Starting workflow server (%s)", transport)
    if transport == "stdio":
        mcp.run()
    else:
        mcp.run(transport=transport, port=int(os.environ.get("PORT", "3104")))


if __name__ == "__main__":
    main()
