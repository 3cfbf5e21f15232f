"""Path layout and settings for workflow hooks.

Paths are derived from the project directory the hook fires in. Settings
follow a cascade: installation defaults -> global config
(~/.collab-workflow/global-config.json, key "telemetry") -> project config
(.claude/project-config.json, key settings.telemetry).
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

GLOBAL_DIR_NAME = ".collab-workflow"
STATE_DIR_NAME = ".claude"
FALLBACK_STATE_DIR_NAME = ".cursor"

# Installation defaults (lowest priority in cascade)
DEFAULTS: dict[str, Any] = {
    "enabled": True,
    "queueToolStart": True,
    "paramSummaryChars": 100,
    "sessionMaxAgeHours": 24,
    "reviewMarkerMaxAgeMinutes": 0,
    "logLevel": "INFO",
}


def resolve_project_dir(cwd: str = "") -> Path:
    """Pick the project directory: hook payload cwd, then host env, then process cwd."""
    candidate = (
        cwd
        or os.environ.get("CLAUDE_PROJECT_DIR")
        or os.environ.get("CURSOR_PROJECT_DIR")
        or os.getcwd()
    )
    return Path(candidate)


def load_settings(project_dir: Path, home_dir: Path) -> dict[str, Any]:
    """Load effective settings via cascade: installation -> global -> project."""
    effective = dict(DEFAULTS)

    global_cfg = _read_config(home_dir / GLOBAL_DIR_NAME / "global-config.json")
    _overlay(effective, global_cfg.get("telemetry", {}))

    project_cfg = _read_config(project_dir / STATE_DIR_NAME / "project-config.json")
    settings = project_cfg.get("settings", {})
    if isinstance(settings, dict):
        _overlay(effective, settings.get("telemetry", {}))

    return effective


def _read_config(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _overlay(effective: dict[str, Any], override: Any) -> None:
    """Copy known, non-null keys from override into effective."""
    if not isinstance(override, dict):
        return
    for key, value in override.items():
        if value is not None and key in effective:
            effective[key] = value


class WorkflowConfig:
    """Filesystem layout for one project, plus its effective settings."""

    def __init__(
        self,
        project_dir: Optional[Path | str] = None,
        home_dir: Optional[Path | str] = None,
    ) -> None:
        self.project_dir = Path(project_dir) if project_dir else resolve_project_dir()
        self.home_dir = Path(home_dir) if home_dir else Path.home()

        # Project-scoped state
        self.state_dir = self.project_dir / STATE_DIR_NAME
        self.session_paths = [
            self.state_dir / "telemetry-session.json",
            self.project_dir / FALLBACK_STATE_DIR_NAME / "telemetry-session.json",
        ]
        self.workflow_state_path = self.state_dir / "workflow-state.json"
        self.review_marker_path = self.state_dir / ".review-completed"
        self.queue_path = self.state_dir / "telemetry-queue.jsonl"
        self.correlation_dir = self.state_dir / "correlation"
        self.log_path = self.state_dir / "telemetry.log"

        # Home-scoped state shared across projects
        self.global_dir = self.home_dir / GLOBAL_DIR_NAME
        self.ticket_pointer_path = self.global_dir / "current-ticket.json"

        self.settings = load_settings(self.project_dir, self.home_dir)

    @property
    def session_path(self) -> Path:
        """Where new session descriptors are written."""
        return self.session_paths[0]

    @property
    def enabled(self) -> bool:
        return bool(self.settings.get("enabled", True))

    def setting_int(self, key: str) -> int:
        """Integer setting with fallback to the installation default on bad values."""
        try:
            return int(self.settings.get(key, DEFAULTS[key]))
        except (TypeError, ValueError):
            return int(DEFAULTS[key])
