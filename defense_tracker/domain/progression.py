"""
Stage progression rules.

Each operation takes a :class:`StudentProgressRecord`, checks every
precondition before touching anything, and returns a new record; the input
record is never modified. ``advance`` is the only way ``current_stage`` moves.
"""

from __future__ import annotations

from enum import Enum

from ..infrastructure.exceptions import (
    AlreadyCompletedError,
    ApprovalNotAuthorizedError,
    StageMismatchError,
    StageNotApprovedError,
    ValidationError,
)
from .models import (
    STAGE_SEQUENCES,
    ActorRole,
    ApprovalOutcome,
    ApprovalStatus,
    Program,
    Stage,
    StudentProgressRecord,
)


class StageClass(str, Enum):
    START_GATE = "start_gate"
    SEMINAR = "seminar"
    EXTERNAL = "external"


APPROVAL_POLICY: dict[StageClass, frozenset[ActorRole]] = {
    StageClass.START_GATE: frozenset({ActorRole.MAJOR_SUPERVISOR}),
    StageClass.SEMINAR: frozenset({ActorRole.HOD, ActorRole.DEAN}),
    StageClass.EXTERNAL: frozenset({ActorRole.PROVOST}),
}


def stage_sequence(program: Program) -> tuple[Stage, ...]:
    return STAGE_SEQUENCES[Program(program)]


def stage_index(program: Program, stage: Stage) -> int:
    """Position of ``stage`` in the program's sequence; ``completed`` sits past the end."""
    sequence = stage_sequence(program)
    if stage is Stage.COMPLETED:
        return len(sequence)
    try:
        return sequence.index(stage)
    except ValueError:
        raise ValidationError(
            "stage", f"{stage.value} is not a stage of the {Program(program).value} programme", stage
        ) from None


def next_stage(program: Program, stage: Stage) -> Stage:
    sequence = stage_sequence(program)
    index = stage_index(program, stage)
    if index >= len(sequence) - 1:
        return Stage.COMPLETED
    return sequence[index + 1]


def stage_class(stage: Stage) -> StageClass:
    if stage is Stage.START:
        return StageClass.START_GATE
    if stage is Stage.EXTERNAL_DEFENSE:
        return StageClass.EXTERNAL
    if stage is Stage.COMPLETED:
        raise ValidationError("stage", "The completed state has no approval gate", stage)
    return StageClass.SEMINAR


def authorized_approvers(stage: Stage) -> frozenset[ActorRole]:
    return APPROVAL_POLICY[stage_class(stage)]


def can_approve(stage: Stage, actor_role: ActorRole) -> bool:
    return ActorRole(actor_role) in authorized_approvers(stage)


def new_record(student_id: int | str, program: Program) -> StudentProgressRecord:
    return StudentProgressRecord(student_id=student_id, program=Program(program))


def approve(
    record: StudentProgressRecord,
    stage: Stage,
    actor_role: ActorRole,
    composite: int = 0,
) -> ApprovalOutcome:
    """
    Mark the current stage approved and record its composite score.

    Re-approving an approved stage is a no-op that returns the score already on
    record. Approval never moves the student; call :func:`advance` for that.

    Raises:
        AlreadyCompletedError: the student has finished every stage
        StageMismatchError: ``stage`` is not the current stage
        ApprovalNotAuthorizedError: ``actor_role`` is not in the stage's gate
    """
    stage = Stage(stage)
    if record.completed:
        raise AlreadyCompletedError(record.student_id)
    if stage is not record.current_stage:
        raise StageMismatchError(record.student_id, stage.value, record.current_stage.value)
    allowed = authorized_approvers(stage)
    if ActorRole(actor_role) not in allowed:
        raise ApprovalNotAuthorizedError(
            stage.value, ActorRole(actor_role).value, sorted(r.value for r in allowed)
        )

    if record.approval_status(stage) is ApprovalStatus.APPROVED:
        return ApprovalOutcome(
            record=record.copy(),
            stage=stage,
            composite=record.stage_scores.get(stage, 0),
            already_approved=True,
        )

    updated = record.copy()
    updated.stage_scores[stage] = int(composite)
    updated.approvals[stage] = ApprovalStatus.APPROVED
    updated.approved_by[stage] = ActorRole(actor_role)
    return ApprovalOutcome(record=updated, stage=stage, composite=int(composite))


def advance(record: StudentProgressRecord) -> StudentProgressRecord:
    """
    Move the student exactly one stage forward.

    Raises:
        AlreadyCompletedError: the student has finished every stage
        StageNotApprovedError: the current stage is still pending
    """
    if record.completed:
        raise AlreadyCompletedError(record.student_id)
    if record.approval_status(record.current_stage) is not ApprovalStatus.APPROVED:
        raise StageNotApprovedError(record.student_id, record.current_stage.value)

    updated = record.copy()
    updated.current_stage = next_stage(record.program, record.current_stage)
    return updated
