from __future__ import annotations

from ..infrastructure.exceptions import AlreadyCompletedError, ValidationError
from . import progression
from .models import (
    PanelRole,
    PanelVote,
    Stage,
    StudentProgressRecord,
    VoteDecision,
)


def _clean_identity(value: str, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(field, "cannot be empty", value)
    return cleaned


def _ensure_open(record: StudentProgressRecord) -> None:
    if record.completed:
        raise AlreadyCompletedError(record.student_id)


def assign_panel_role(
    record: StudentProgressRecord, role: PanelRole, assignee: str
) -> tuple[StudentProgressRecord, str | None]:
    """Put ``assignee`` in ``role``, replacing whoever held it. Returns the previous holder."""
    _ensure_open(record)
    role = PanelRole(role)
    assignee = _clean_identity(assignee, "assignee")
    previous = record.panel.get(role)
    updated = record.copy()
    updated.panel[role] = assignee
    return updated, previous


def list_panel(record: StudentProgressRecord) -> dict[PanelRole, str]:
    return dict(record.panel)


def cast_vote(
    record: StudentProgressRecord,
    stage: Stage,
    panel_member: str,
    decision: VoteDecision,
    comment: str | None = None,
) -> PanelVote:
    """
    Build a panel member's vote or comment on a stage.

    Votes are advisory; they never change the approval status. The voter's
    panel role is looked up from the record when they hold one. The stage
    must belong to the student's programme, and a completed record takes no
    more votes.
    """
    _ensure_open(record)
    stage = Stage(stage)
    if stage is Stage.COMPLETED:
        raise ValidationError("stage", "The completed state cannot be voted on", stage)
    progression.stage_index(record.program, stage)
    panel_member = _clean_identity(panel_member, "panel_member")
    role = next((r for r, who in record.panel.items() if who == panel_member), None)
    if comment is not None:
        comment = comment.strip() or None
    return PanelVote(
        student_id=record.student_id,
        stage=stage,
        panel_member=panel_member,
        decision=VoteDecision(decision),
        panel_role=role,
        comment=comment,
    )
