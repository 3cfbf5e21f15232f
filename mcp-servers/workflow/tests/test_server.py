"""Tests for the workflow MCP server tools."""

from collab_workflow import server


def _call(tool, **kwargs):
    # FastMCP wraps decorated functions; the undecorated function is kept on .fn
    return getattr(tool, "fn", tool)(**kwargs)


def test_session_lifecycle(project_dir):
    path = str(project_dir)
    created = _call(server.create_session, ticket_id="T-1", project_path=path)
    assert created["currentState"] == "idle"

    denied = _call(server.check_action, tool_name="edit", tool_args={"path": "a.py"}, project_path=path)
    assert denied["permissionDecision"] == "deny"

    updated = _call(server.update_session_state, state="implementing", project_path=path)
    assert updated["previousState"] == "idle"

    allowed = _call(server.check_action, tool_name="edit", tool_args={"path": "a.py"}, project_path=path)
    assert allowed == {"permissionDecision": "allow"}

    completed = _call(server.complete_session, project_path=path)
    assert completed["stateHistory"][-1] == "done"


def test_errors_returned_as_dicts(project_dir):
    path = str(project_dir)
    assert "error" in _call(server.update_session_state, state="implementing", project_path=path)
    assert "error" in _call(server.end_telemetry, project_path=path)
    assert "error" in _call(server.complete_session, project_path=path)
    assert "error" in _call(server.create_session, ticket_id="", project_path=path)


def test_telemetry_and_review(project_dir):
    path = str(project_dir)
    started = _call(server.start_telemetry, project_path=path, redact_prompts=True)
    session_id = started["session"]["sessionId"]

    marker = _call(server.mark_review_completed, project_path=path)
    assert marker["timestamp"]

    status = _call(server.workflow_status, project_path=path)
    assert status["reviewCompleted"] is True
    assert status["telemetrySession"]["sessionId"] == session_id

    ended = _call(server.end_telemetry, project_path=path, session_id=session_id)
    assert ended["sessionId"] == session_id
    assert ended["queuedEvents"] == 0
