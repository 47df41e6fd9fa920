"""
Defence sittings.

A defence groups the students who defend the same stage at one sitting. It is
scheduled, started and ended in that order, and panel scores for a stage are
only taken while a defence covering the student is in progress.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from ..infrastructure.exceptions import (
    AlreadyCompletedError,
    DefenceStateError,
    ScoringClosedError,
    StageMismatchError,
    ValidationError,
)
from .models import ApprovalStatus, Defence, DefenceStatus, Stage, StudentProgressRecord


def schedule_defence(
    records: Iterable[StudentProgressRecord],
    stage: Stage,
    scheduled_for: datetime,
    venue: str | None = None,
) -> Defence:
    """
    Build a new defence of ``stage`` for every student in ``records``.

    Each student must currently be at ``stage`` with that stage still open.

    Raises:
        ValidationError: no students, a student listed twice, or the completed state
        AlreadyCompletedError: a student has finished the programme
        StageMismatchError: ``stage`` is not a student's current stage
        ScoringClosedError: a student's stage is already approved
    """
    stage = Stage(stage)
    if stage is Stage.COMPLETED:
        raise ValidationError("stage", "The completed state has no defence", stage)
    records = list(records)
    if not records:
        raise ValidationError("student_ids", "At least one student is required")

    student_ids: list[int | str] = []
    for record in records:
        if record.student_id in student_ids:
            raise ValidationError(
                "student_ids", "A student can only be listed once", record.student_id
            )
        if record.completed:
            raise AlreadyCompletedError(record.student_id)
        if record.current_stage is not stage:
            raise StageMismatchError(record.student_id, stage.value, record.current_stage.value)
        if record.approval_status(stage) is ApprovalStatus.APPROVED:
            raise ScoringClosedError(record.student_id, stage.value)
        student_ids.append(record.student_id)

    if venue is not None:
        venue = venue.strip() or None
    return Defence(
        defence_id=None,
        stage=stage,
        scheduled_for=scheduled_for,
        student_ids=tuple(student_ids),
        venue=venue,
    )


def start_defence(defence: Defence, at: datetime) -> Defence:
    if defence.status is not DefenceStatus.SCHEDULED:
        raise DefenceStateError(defence.defence_id, defence.status.value, "started")
    return replace(defence, started_at=at)


def end_defence(defence: Defence, at: datetime) -> Defence:
    if defence.status is not DefenceStatus.IN_PROGRESS:
        raise DefenceStateError(defence.defence_id, defence.status.value, "ended")
    return replace(defence, ended_at=at)


def accepts_scores(defence: Defence, student_id: int | str, stage: Stage) -> bool:
    """True while ``defence`` is in progress for ``student_id`` at ``stage``."""
    return defence.running and defence.stage is Stage(stage) and student_id in defence.student_ids
