"""Shared fixtures: every test gets its own project directory and home directory."""

from __future__ import annotations

import json
import logging

import pytest

from collab_workflow.config import WorkflowConfig
from collab_workflow.sessions import start_telemetry_session


@pytest.fixture(autouse=True)
def home_dir(tmp_path, monkeypatch):
    """Point HOME at a temp dir so the ticket pointer never touches the real one."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("CLAUDE_PROJECT_DIR", raising=False)
    monkeypatch.delenv("CURSOR_PROJECT_DIR", raising=False)
    yield home

    package_logger = logging.getLogger("collab_workflow")
    for handler in list(package_logger.handlers):
        if getattr(handler, "_collab_workflow", False):
            package_logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def project_dir(tmp_path):
    project = tmp_path / "project"
    (project / ".claude").mkdir(parents=True)
    return project


@pytest.fixture
def config(project_dir, home_dir):
    return WorkflowConfig(project_dir=project_dir, home_dir=home_dir)


@pytest.fixture
def write_project_settings(project_dir, home_dir):
    """Write .claude/project-config.json telemetry settings and return a fresh config."""

    def _write(**telemetry):
        path = project_dir / ".claude" / "project-config.json"
        path.write_text(json.dumps({"settings": {"telemetry": telemetry}}))
        return WorkflowConfig(project_dir=project_dir, home_dir=home_dir)

    return _write


@pytest.fixture
def active_session(config):
    """Start a telemetry session; returns the descriptor dict."""

    def _start(redact_prompts: bool = False, ticket_id=None) -> dict:
        return start_telemetry_session(config, ticket_id, redact_prompts)["session"]

    return _start


def read_queue(config) -> list[dict]:
    if not config.queue_path.exists():
        return []
    return [json.loads(line) for line in config.queue_path.read_text().splitlines() if line.strip()]


@pytest.fixture
def queued(config):
    """Callable returning the parsed queue contents."""
    return lambda: read_queue(config)
