"""Hook handlers and the stdin/stdout runner shared by scripts/hooks/*.py.

Hook protocol:
- Reads one JSON document from stdin (tool name/args, prompt, error, cwd)
- preToolUse writes {"permissionDecision": "allow"|"deny", "reason": ...}
- sessionStart/sessionEnd may write a human-readable notification
- Exit 0 always; a deny is carried in the payload, not the exit status

Telemetry is recorded only while a session descriptor exists. Without one
every telemetry hook is a silent no-op. Admission decisions do not depend
on telemetry being active.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Callable, Optional, TextIO, Union

from .config import WorkflowConfig, resolve_project_dir
from .correlation import CorrelationStore
from .event_queue import EventQueue
from .models import HookInput, TelemetrySession
from .policy import classify_action, decide
from .registry import SessionRegistry
from .sessions import mark_review_completed, session_is_fresh
from .telemetry import build_prompt_event, build_tool_end_event, build_tool_start_event

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] [%(name)s] %(message)s"

# Tools whose own calls must not be recorded (they manage telemetry itself)
TELEMETRY_TOOL_MARKER = "telemetry"

HookOutput = Union[dict, str, None]
Handler = Callable[[HookInput, WorkflowConfig], HookOutput]


# =============================================================================
# Logging
# =============================================================================


def configure_logging(config: WorkflowConfig) -> None:
    """Route package logs to .claude/telemetry.log for this hook process.

    Projects without a .claude directory get no log file; hooks must not
    leave files behind in projects that never opted in.
    """
    package_logger = logging.getLogger("collab_workflow")
    for existing in list(package_logger.handlers):
        if getattr(existing, "_collab_workflow", False):
            package_logger.removeHandler(existing)
            existing.close()

    handler: logging.Handler
    if config.state_dir.is_dir():
        try:
            handler = logging.FileHandler(config.log_path, encoding="utf-8")
        except OSError:
            handler = logging.NullHandler()
    else:
        handler = logging.NullHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, "%Y-%m-%dT%H:%M:%S"))
    handler._collab_workflow = True  # type: ignore[attr-defined]
    package_logger.addHandler(handler)
    try:
        package_logger.setLevel(str(config.settings.get("logLevel", "INFO")).upper())
    except ValueError:
        package_logger.setLevel(logging.INFO)


# =============================================================================
# Helpers
# =============================================================================


def _active_session(config: WorkflowConfig, registry: SessionRegistry) -> Optional[TelemetrySession]:
    if not config.enabled:
        return None
    return registry.resolve_session()


def _is_telemetry_tool(tool_name: str) -> bool:
    return TELEMETRY_TOOL_MARKER in tool_name.lower()


def _record_start(payload: HookInput, config: WorkflowConfig, registry: SessionRegistry) -> None:
    session = _active_session(config, registry)
    if session is None or _is_telemetry_tool(payload.tool_name):
        return
    try:
        correlation_id = CorrelationStore(config.correlation_dir).begin(payload.tool_name)
        if config.settings.get("queueToolStart", True):
            EventQueue(config.queue_path).enqueue(
                build_tool_start_event(
                    session,
                    payload.tool_name,
                    correlation_id,
                    payload.tool_args,
                    config.setting_int("paramSummaryChars"),
                )
            )
        logger.info("Queued tool_start: %s (corr: %s)", payload.tool_name, correlation_id)
    except Exception as exc:
        logger.warning("Failed to record start of %s: %s", payload.tool_name, exc)


def _record_end(payload: HookInput, config: WorkflowConfig, success: bool) -> None:
    registry = SessionRegistry(config)
    session = _active_session(config, registry)
    if session is None or _is_telemetry_tool(payload.tool_name):
        return
    try:
        correlation_id, duration_ms = CorrelationStore(config.correlation_dir).end(payload.tool_name)
    except Exception as exc:
        logger.warning("Correlation lookup failed for %s: %s", payload.tool_name, exc)
        correlation_id, duration_ms = "", 0
    event = build_tool_end_event(
        session,
        payload.tool_name,
        correlation_id,
        duration_ms,
        success=success,
        error=payload.error,
        result=payload.result,
    )
    EventQueue(config.queue_path).enqueue(event)
    if success:
        logger.info("Queued tool_end: %s (%dms)", payload.tool_name, duration_ms)
    else:
        logger.info("Queued tool_failure: %s (%dms)", payload.tool_name, duration_ms)


# =============================================================================
# Handlers
# =============================================================================


def session_start(payload: HookInput, config: WorkflowConfig) -> HookOutput:
    """Nudge the agent to start telemetry when none is running."""
    registry = SessionRegistry(config)
    session = _active_session(config, registry)
    if session is not None and session_is_fresh(session, config.setting_int("sessionMaxAgeHours")):
        logger.info("Telemetry session %s still active, skipping", session.session_id)
        return None

    ticket = registry.resolve_active_ticket()
    if ticket:
        logger.info("Found active ticket: %s", ticket)
        return (
            f"TELEMETRY: Active ticket detected: {ticket}\n"
            f'Call the workflow tool start_telemetry(ticket_id="{ticket}") '
            "to begin tracking this session."
        )
    return (
        "TELEMETRY: No active ticket detected.\n"
        'To track this session for a ticket, call start_telemetry(ticket_id="<ticket-id>").'
    )


def user_prompt_submit(payload: HookInput, config: WorkflowConfig) -> HookOutput:
    registry = SessionRegistry(config)
    session = _active_session(config, registry)
    if session is None:
        return None
    event = build_prompt_event(session, payload.prompt)
    if EventQueue(config.queue_path).enqueue(event):
        logger.info("Prompt logged (%d chars, redacted=%s)", event.prompt_length, event.redacted)
    return None


def pre_tool_use(payload: HookInput, config: WorkflowConfig) -> HookOutput:
    """Admission decision for the proposed call; records the start if allowed."""
    registry = SessionRegistry(config)
    action = classify_action(payload.tool_name, payload.tool_args)
    decision = decide(action, registry.policy_context())
    if decision.allowed:
        _record_start(payload, config, registry)
    else:
        logger.info("Denied %s: %s", action.tool_name, (decision.reason or "").splitlines()[0])
    return decision.to_output()


def post_tool_use(payload: HookInput, config: WorkflowConfig) -> HookOutput:
    _record_end(payload, config, success=True)
    return None


def post_tool_use_failure(payload: HookInput, config: WorkflowConfig) -> HookOutput:
    _record_end(payload, config, success=False)
    return None


def session_end(payload: HookInput, config: WorkflowConfig) -> HookOutput:
    """Summarize what is waiting in the queue and point at the finalize action."""
    registry = SessionRegistry(config)
    session = _active_session(config, registry)
    if session is None:
        logger.info("No active telemetry session, skipping")
        return None

    queued = EventQueue(config.queue_path).count()
    unmatched = [r.tool_name for r in CorrelationStore(config.correlation_dir).outstanding()]
    logger.info("Ending telemetry session: %s (%d queued events)", session.session_id, queued)

    lines = [f"TELEMETRY: Session ending. Session ID: {session.session_id}, Queued events: {queued}"]
    if unmatched:
        lines.append(f"Tools started without a recorded end: {', '.join(unmatched)}")
    lines.append(
        f'Call the workflow tool end_telemetry(session_id="{session.session_id}") '
        "to finalize this session."
    )
    return "\n".join(lines)


HOOKS: dict[str, Handler] = {
    "session-start": session_start,
    "user-prompt-submit": user_prompt_submit,
    "pre-tool-use": pre_tool_use,
    "post-tool-use": post_tool_use,
    "post-tool-use-failure": post_tool_use_failure,
    "session-end": session_end,
}


# =============================================================================
# Runner
# =============================================================================


def _write_output(output: HookOutput, stdout: TextIO) -> None:
    if output is None:
        return
    if isinstance(output, dict):
        stdout.write(json.dumps(output) + "\n")
    else:
        stdout.write(output + "\n")
    stdout.flush()


def run_hook(
    name: str,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> int:
    """Run one hook end to end. Always returns 0."""
    stdin = stdin if stdin is not None else sys.stdin
    stdout = stdout if stdout is not None else sys.stdout
    handler = HOOKS.get(name)
    if handler is None:
        sys.stderr.write(f"Unknown hook: {name}\n")
        return 0

    try:
        raw = stdin.read()
    except (OSError, UnicodeDecodeError):
        raw = ""

    try:
        payload = HookInput.parse(raw)
        config = WorkflowConfig(project_dir=resolve_project_dir(payload.cwd))
        configure_logging(config)
        logger.debug("%s hook triggered for %s", name, payload.tool_name or "-")
        _write_output(handler(payload, config), stdout)
    except Exception:
        # Never fail the host's tool call over an internal error
        logger.exception("%s hook failed", name)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="collab-workflow-hook",
        description="Telemetry and workflow-enforcement hooks for AI coding agents.",
    )
    parser.add_argument(
        "hook",
        choices=sorted(HOOKS) + ["mark-review-completed"],
        help="Lifecycle hook to run (reads its JSON payload from stdin)",
    )
    parser.add_argument(
        "--project-dir",
        default=None,
        help="Project directory (mark-review-completed only; defaults to the current project)",
    )
    args = parser.parse_args(argv)

    if args.hook == "mark-review-completed":
        config = WorkflowConfig(project_dir=resolve_project_dir(args.project_dir or ""))
        configure_logging(config)
        result = mark_review_completed(config)
        print(f"Review marker created: {result['marker']} ({result['timestamp']})")
        return 0

    return run_hook(args.hook)


if __name__ == "__main__":
    sys.exit(main())
