"""Session registry: resolves the telemetry session, active ticket and review marker.

Every reader treats a missing, half-written or malformed file as "absent";
the caller then takes no action. Writers replace files atomically.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path, PurePath
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from . import files
from .config import WorkflowConfig
from .models import TelemetrySession, TicketPointer, WorkflowState, utc_now_iso
from .policy import PolicyContext

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _load(path: Path, model: type[ModelT]) -> Optional[ModelT]:
    data = files.read_json(path)
    if data is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring malformed %s: %d validation error(s)", path.name, exc.error_count())
        return None


def path_is_within(child: str | Path, parent: str | Path) -> bool:
    """Component-wise prefix test: /repo/app is within /repo, /repo2 is not."""
    if not str(parent):
        return False
    child_parts = PurePath(child).parts
    parent_parts = PurePath(parent).parts
    return child_parts[: len(parent_parts)] == parent_parts


class SessionRegistry:
    """Repository over the per-project and home-scoped state files."""

    def __init__(self, config: WorkflowConfig):
        self.config = config

    # -- telemetry session -------------------------------------------------

    def resolve_session(self) -> Optional[TelemetrySession]:
        """Active telemetry session for this project, or None (telemetry inactive).

        .claude is consulted before .cursor; an unusable descriptor in one
        falls through to the next.
        """
        for path in self.config.session_paths:
            session = _load(path, TelemetrySession)
            if session is not None and session.session_id:
                return session
        return None

    def save_session(self, session: TelemetrySession) -> None:
        files.write_json_atomic(
            self.config.session_path, session.model_dump(by_alias=True, exclude_none=True)
        )

    def clear_session(self) -> bool:
        removed = False
        for path in self.config.session_paths:
            removed = files.remove(path) or removed
        return removed

    # -- workflow state ----------------------------------------------------

    def load_workflow_state(self) -> Optional[WorkflowState]:
        return _load(self.config.workflow_state_path, WorkflowState)

    def save_workflow_state(self, state: WorkflowState) -> None:
        state.updated_at = utc_now_iso()
        files.write_json_atomic(
            self.config.workflow_state_path, state.model_dump(by_alias=True, exclude_none=True)
        )

    def clear_workflow_state(self) -> bool:
        return files.remove(self.config.workflow_state_path)

    # -- ticket pointer ----------------------------------------------------

    def load_ticket_pointer(self) -> Optional[TicketPointer]:
        return _load(self.config.ticket_pointer_path, TicketPointer)

    def save_ticket_pointer(self, ticket_id: str) -> TicketPointer:
        pointer = TicketPointer(
            project_path=str(self.config.project_dir),
            ticket_id=ticket_id,
            started_at=utc_now_iso(),
        )
        files.write_json_atomic(
            self.config.ticket_pointer_path, pointer.model_dump(by_alias=True, exclude_none=True)
        )
        return pointer

    def clear_ticket_pointer(self) -> bool:
        """Remove the pointer, but only if it belongs to this project."""
        pointer = self.load_ticket_pointer()
        if pointer is None or pointer.project_path != str(self.config.project_dir):
            return False
        return files.remove(self.config.ticket_pointer_path)

    def resolve_active_ticket(self) -> Optional[str]:
        """Ticket in scope for this project.

        The local workflow state wins. Otherwise the home-scoped pointer is
        consulted, and honored only when its project path contains the
        current project, so a ticket started in one repo never gates another.
        """
        return self._active_ticket(self.load_workflow_state())

    def _active_ticket(self, state: Optional[WorkflowState]) -> Optional[str]:
        if state is not None and state.ticket_id:
            return state.ticket_id

        pointer = self.load_ticket_pointer()
        if pointer is None or not pointer.ticket_id or not pointer.project_path:
            return None
        if path_is_within(self.config.project_dir, pointer.project_path):
            return pointer.ticket_id
        logger.debug(
            "Ignoring ticket pointer %s scoped to another project", pointer.ticket_id
        )
        return None

    # -- review marker -----------------------------------------------------

    def review_completed(self) -> bool:
        marker = self.config.review_marker_path
        try:
            mtime = marker.stat().st_mtime
        except OSError:
            return False
        max_age_minutes = self.config.setting_int("reviewMarkerMaxAgeMinutes")
        if max_age_minutes <= 0:
            return True
        age_minutes = (time.time() - mtime) / 60
        if age_minutes >= max_age_minutes:
            logger.info("Review marker is stale (%.0f min old)", age_minutes)
            return False
        return True

    def mark_review_completed(self) -> str:
        timestamp = utc_now_iso()
        files.write_text_atomic(self.config.review_marker_path, timestamp)
        return timestamp

    def clear_review_marker(self) -> bool:
        return files.remove(self.config.review_marker_path)

    # -- policy ------------------------------------------------------------

    def policy_context(self) -> PolicyContext:
        """Snapshot of everything the admission policy reads."""
        state = self.load_workflow_state()
        ticket = self._active_ticket(state)
        return PolicyContext(
            active_ticket=ticket,
            workflow_state=state if ticket else None,
            review_completed=self.review_completed() if ticket else False,
        )
