"""Tests for the session registry."""

from __future__ import annotations

import json
import os
import time

import pytest

from collab_workflow.config import WorkflowConfig
from collab_workflow.models import TelemetrySession, WorkflowState
from collab_workflow.registry import SessionRegistry, path_is_within


def _write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data) if not isinstance(data, str) else data)


class TestResolveSession:
    def test_missing(self, config):
        assert SessionRegistry(config).resolve_session() is None

    def test_valid(self, config):
        _write_json(config.session_path, {"sessionId": "s-1", "redactPrompts": True})
        session = SessionRegistry(config).resolve_session()
        assert session.session_id == "s-1"
        assert session.redact_prompts is True

    def test_redact_defaults_false(self, config):
        _write_json(config.session_path, {"sessionId": "s-1"})
        assert SessionRegistry(config).resolve_session().redact_prompts is False

    @pytest.mark.parametrize(
        "content",
        ["{not json", '{"sessionId": ""}', '{"redactPrompts": true}', "[1, 2]", ""],
    )
    def test_malformed_is_absent(self, config, content):
        _write_json(config.session_path, content)
        assert SessionRegistry(config).resolve_session() is None

    def test_cursor_fallback(self, config, project_dir):
        _write_json(project_dir / ".cursor" / "telemetry-session.json", {"sessionId": "cur-1"})
        assert SessionRegistry(config).resolve_session().session_id == "cur-1"

    def test_malformed_claude_falls_back_to_cursor(self, config, project_dir):
        _write_json(config.session_path, "{broken")
        _write_json(project_dir / ".cursor" / "telemetry-session.json", {"sessionId": "cur-2"})
        assert SessionRegistry(config).resolve_session().session_id == "cur-2"

    def test_claude_preferred_over_cursor(self, config, project_dir):
        _write_json(config.session_path, {"sessionId": "claude-1"})
        _write_json(project_dir / ".cursor" / "telemetry-session.json", {"sessionId": "cur-3"})
        assert SessionRegistry(config).resolve_session().session_id == "claude-1"

    def test_save_and_clear(self, config):
        registry = SessionRegistry(config)
        registry.save_session(TelemetrySession(session_id="s-2"))
        assert registry.resolve_session().session_id == "s-2"
        assert registry.clear_session()
        assert registry.resolve_session() is None
        assert not registry.clear_session()


class TestPathIsWithin:
    def test_same_path(self):
        assert path_is_within("/repo", "/repo")

    def test_child(self):
        assert path_is_within("/repo/packages/app", "/repo")

    def test_sibling_with_shared_prefix(self):
        assert not path_is_within("/repo2", "/repo")

    def test_parent_is_not_within_child(self):
        assert not path_is_within("/repo", "/repo/app")

    def test_empty_parent(self):
        assert not path_is_within("/repo", "")


class TestActiveTicket:
    def test_none(self, config):
        assert SessionRegistry(config).resolve_active_ticket() is None

    def test_from_workflow_state(self, config):
        registry = SessionRegistry(config)
        registry.save_workflow_state(
            WorkflowState(ticket_id="T-7", session_id="x", current_state="idle")
        )
        assert registry.resolve_active_ticket() == "T-7"

    def test_from_pointer_in_project(self, config):
        registry = SessionRegistry(config)
        registry.save_ticket_pointer("T-8")
        assert registry.resolve_active_ticket() == "T-8"

    def test_pointer_from_parent_project(self, config, project_dir):
        _write_json(
            config.ticket_pointer_path,
            {"projectPath": str(project_dir.parent), "ticketId": "T-9"},
        )
        assert SessionRegistry(config).resolve_active_ticket() == "T-9"

    def test_pointer_from_other_project_ignored(self, config, tmp_path):
        _write_json(
            config.ticket_pointer_path,
            {"projectPath": str(tmp_path / "other"), "ticketId": "T-10"},
        )
        assert SessionRegistry(config).resolve_active_ticket() is None

    def test_pointer_from_sibling_prefix_ignored(self, config, project_dir):
        _write_json(
            config.ticket_pointer_path,
            {"projectPath": str(project_dir) + "-old", "ticketId": "T-11"},
        )
        assert SessionRegistry(config).resolve_active_ticket() is None

    def test_workflow_state_wins_over_pointer(self, config):
        registry = SessionRegistry(config)
        registry.save_ticket_pointer("T-pointer")
        registry.save_workflow_state(
            WorkflowState(ticket_id="T-state", session_id="x", current_state="idle")
        )
        assert registry.resolve_active_ticket() == "T-state"

    @pytest.mark.parametrize(
        "state_file",
        [
            {"ticketId": "T1", "currentState": None},
            {"ticketId": "T1", "currentState": "reviewing", "sessionId": None},
            {"ticketId": "T1", "stateHistory": {"bad": 1}, "startedAt": 0},
        ],
    )
    def test_partial_state_file_keeps_ticket(self, config, state_file):
        _write_json(config.workflow_state_path, state_file)
        context = SessionRegistry(config).policy_context()
        assert context.active_ticket == "T1"
        assert context.workflow_state is not None
        assert not context.workflow_state.allows_writes

    def test_numeric_ticket_id_read_as_text(self, config):
        _write_json(config.workflow_state_path, {"ticketId": 42, "currentState": "testing"})
        assert SessionRegistry(config).resolve_active_ticket() == "42"

    def test_pointer_with_bad_timestamp_still_honored(self, config):
        _write_json(
            config.ticket_pointer_path,
            {"projectPath": str(config.project_dir), "ticketId": "T-14", "startedAt": 17},
        )
        assert SessionRegistry(config).resolve_active_ticket() == "T-14"

    def test_null_pointer_fields_ignored(self, config):
        _write_json(config.ticket_pointer_path, {"projectPath": None, "ticketId": "T-13"})
        assert SessionRegistry(config).resolve_active_ticket() is None

    def test_malformed_pointer_ignored(self, config):
        _write_json(config.ticket_pointer_path, "{{{")
        assert SessionRegistry(config).resolve_active_ticket() is None

    def test_clear_pointer_only_for_own_project(self, config, tmp_path):
        _write_json(
            config.ticket_pointer_path,
            {"projectPath": str(tmp_path / "other"), "ticketId": "T-12"},
        )
        assert not SessionRegistry(config).clear_ticket_pointer()
        assert config.ticket_pointer_path.exists()


class TestReviewMarker:
    def test_absent(self, config):
        assert not SessionRegistry(config).review_completed()

    def test_mark_and_clear(self, config):
        registry = SessionRegistry(config)
        timestamp = registry.mark_review_completed()
        assert config.review_marker_path.read_text() == timestamp
        assert registry.review_completed()
        assert registry.clear_review_marker()
        assert not registry.review_completed()

    def test_old_marker_counts_by_default(self, config):
        registry = SessionRegistry(config)
        registry.mark_review_completed()
        old = time.time() - 3 * 3600
        os.utime(config.review_marker_path, (old, old))
        assert registry.review_completed()

    def test_stale_marker_with_max_age(self, write_project_settings):
        config = write_project_settings(reviewMarkerMaxAgeMinutes=30)
        registry = SessionRegistry(config)
        registry.mark_review_completed()
        assert registry.review_completed()

        old = time.time() - 31 * 60
        os.utime(config.review_marker_path, (old, old))
        assert not registry.review_completed()


class TestPolicyContext:
    def test_empty(self, config):
        context = SessionRegistry(config).policy_context()
        assert context.active_ticket is None
        assert context.workflow_state is None
        assert context.review_completed is False

    def test_populated(self, config):
        registry = SessionRegistry(config)
        registry.save_workflow_state(
            WorkflowState(ticket_id="T-1", session_id="x", current_state="testing")
        )
        registry.mark_review_completed()
        context = registry.policy_context()
        assert context.active_ticket == "T-1"
        assert context.workflow_state.current_state == "testing"
        assert context.review_completed is True

    def test_state_file_is_read_from_project(self, project_dir, home_dir):
        _write_json(
            project_dir / ".claude" / "workflow-state.json",
            {"ticketId": "T-3", "sessionId": "s", "currentState": "implementing"},
        )
        config = WorkflowConfig(project_dir=project_dir, home_dir=home_dir)
        assert SessionRegistry(config).policy_context().workflow_state.allows_writes
