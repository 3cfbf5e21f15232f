"""Admission policy for tool calls inside a ticket workflow.

Pure: no file access. The registry gathers a PolicyContext from the state
files; decide() maps (action, context) to allow or deny. Rules are evaluated
in order and the first match wins:

1. write, no active ticket                      -> allow
2. write, ticket, no workflow state             -> deny (create session)
3. write, ticket, state in WRITE_STATES         -> allow
4. write, ticket, any other state               -> deny (transition)
5. publish, ticket, no review marker            -> deny (review required)
6. publish, no ticket                           -> allow
7. anything else                                -> allow
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .models import WRITE_STATES, AdmissionDecision, SessionState, WorkflowState

WRITE_TOOLS = frozenset({"write", "edit", "create", "multiedit", "notebookedit"})
SHELL_TOOLS = frozenset({"bash", "shell"})

# Anchored at position zero (after leading whitespace); a later "git push"
# inside a pipeline or string literal does not match.
PUBLISH_PATTERN = re.compile(r"^\s*(?:git\s+push|gh\s+pr\s+create)\b")


class ActionKind(str, Enum):
    WRITE = "write"
    SHELL = "shell"
    OTHER = "other"


@dataclass(frozen=True)
class ToolAction:
    tool_name: str
    kind: ActionKind
    command: str = ""
    path: str = ""

    @property
    def is_publish(self) -> bool:
        return self.kind is ActionKind.SHELL and is_publish_command(self.command)


@dataclass(frozen=True)
class PolicyContext:
    active_ticket: Optional[str] = None
    workflow_state: Optional[WorkflowState] = None
    review_completed: bool = False


def is_publish_command(command: str) -> bool:
    """True when command starts with `git push` or `gh pr create`."""
    if not isinstance(command, str):
        return False
    return PUBLISH_PATTERN.match(command) is not None


def classify_action(tool_name: Any, tool_args: Any = None) -> ToolAction:
    """Build a ToolAction from raw hook fields. Tool names compare case-insensitively."""
    name = tool_name if isinstance(tool_name, str) else ""
    args = tool_args if isinstance(tool_args, dict) else {}
    lowered = name.strip().lower()

    if lowered in WRITE_TOOLS:
        kind = ActionKind.WRITE
    elif lowered in SHELL_TOOLS:
        kind = ActionKind.SHELL
    else:
        kind = ActionKind.OTHER

    command = args.get("command", "")
    path = args.get("path") or args.get("file_path") or ""
    return ToolAction(
        tool_name=name,
        kind=kind,
        command=command if isinstance(command, str) else "",
        path=path if isinstance(path, str) else "",
    )


def decide(action: ToolAction, context: PolicyContext) -> AdmissionDecision:
    """Render the admission decision for one proposed tool call."""
    ticket = context.active_ticket

    if action.kind is ActionKind.WRITE:
        if not ticket:
            return AdmissionDecision.allow()
        state = context.workflow_state
        if state is None or not state.current_state:
            return AdmissionDecision.deny(_no_session_reason(ticket))
        if state.allows_writes:
            return AdmissionDecision.allow()
        return AdmissionDecision.deny(_wrong_state_reason(state))

    if action.is_publish:
        if ticket and not context.review_completed:
            return AdmissionDecision.deny(_review_required_reason(ticket))
        return AdmissionDecision.allow()

    return AdmissionDecision.allow()


def _no_session_reason(ticket: str) -> str:
    return (
        "STATE ENFORCEMENT: No active workflow session found for ticket "
        f"'{ticket}'.\n\n"
        "Call the workflow tools first:\n"
        f'  create_session(ticket_id="{ticket}")\n'
        f'  update_session_state(state="{SessionState.IMPLEMENTING.value}")\n\n'
        "After updating your state, retry this operation."
    )


def _wrong_state_reason(state: WorkflowState) -> str:
    valid = ", ".join(s.value for s in SessionState if s.value in WRITE_STATES)
    return (
        f"STATE ENFORCEMENT: You are in '{state.current_state}' state but tried "
        "to write/edit code.\n\n"
        "To write code, call the workflow tool:\n"
        f'  update_session_state(session_id="{state.session_id}", '
        f'state="{SessionState.IMPLEMENTING.value}")\n\n'
        f"Valid states for writing code: {valid}."
    )


def _review_required_reason(ticket: str) -> str:
    return (
        "REVIEW REQUIRED: Complete AI review before pushing or creating a PR "
        f"for ticket '{ticket}'.\n\n"
        "Run the review step, then mark the review complete with either:\n"
        "  mark_review_completed()  (workflow tool)\n"
        "  scripts/hooks/mark-review-completed.py\n\n"
        "After review is complete, retry this command."
    )
