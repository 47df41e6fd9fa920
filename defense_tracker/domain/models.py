from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class Program(str, Enum):
    MSC = "msc"
    PHD = "phd"


class Stage(str, Enum):
    START = "start"
    # MSc
    PROPOSAL = "proposal"
    INTERNAL_DEFENSE = "internal_defense"
    # PhD
    PROPOSAL_DEFENSE = "proposal_defense"
    SECOND_SEMINAR = "second_seminar"
    THIRD_SEMINAR = "third_seminar"
    # both
    EXTERNAL_DEFENSE = "external_defense"
    COMPLETED = "completed"  # terminal, not part of any sequence


STAGE_SEQUENCES: dict[Program, tuple[Stage, ...]] = {
    Program.MSC: (
        Stage.START,
        Stage.PROPOSAL,
        Stage.INTERNAL_DEFENSE,
        Stage.EXTERNAL_DEFENSE,
    ),
    Program.PHD: (
        Stage.START,
        Stage.PROPOSAL_DEFENSE,
        Stage.SECOND_SEMINAR,
        Stage.THIRD_SEMINAR,
        Stage.EXTERNAL_DEFENSE,
    ),
}


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class PanelRole(str, Enum):
    MAJOR_SUPERVISOR = "major_supervisor"
    MINOR_SUPERVISOR = "minor_supervisor"
    INTERNAL_EXAMINER = "internal_examiner"
    EXTERNAL_EXAMINER = "external_examiner"
    COLLEGE_REP = "college_rep"
    FACULTY_REP = "faculty_rep"


class ActorRole(str, Enum):
    """Role of the caller, as supplied by the authorization layer."""

    STUDENT = "student"
    LECTURER = "lecturer"
    HOD = "hod"
    PG_COORDINATOR = "pg_coordinator"
    DEAN = "dean"
    PROVOST = "provost"
    MAJOR_SUPERVISOR = "major_supervisor"
    MINOR_SUPERVISOR = "minor_supervisor"
    INTERNAL_EXAMINER = "internal_examiner"
    EXTERNAL_EXAMINER = "external_examiner"
    COLLEGE_REP = "college_rep"
    FACULTY_REP = "faculty_rep"
    ADMIN = "admin"


class VoteDecision(str, Enum):
    APPROVE = "approve"
    REVISE = "revise"
    REJECT = "reject"
    COMMENT = "comment"


class DefenceStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    ENDED = "ended"


@dataclass(slots=True, frozen=True)
class Criterion:
    title: str
    percentage: Decimal


@dataclass(slots=True, frozen=True)
class Rubric:
    """A published, immutable criterion set bound to one stage."""

    stage: Stage
    criteria: tuple[Criterion, ...]

    @property
    def titles(self) -> tuple[str, ...]:
        return tuple(c.title for c in self.criteria)

    def find(self, title: str) -> Criterion | None:
        key = title.strip().casefold()
        for criterion in self.criteria:
            if criterion.title.casefold() == key:
                return criterion
        return None


@dataclass(slots=True)
class StudentProgressRecord:
    student_id: int | str
    program: Program
    current_stage: Stage = Stage.START
    stage_scores: dict[Stage, int] = field(default_factory=dict)
    approvals: dict[Stage, ApprovalStatus] = field(default_factory=dict)
    approved_by: dict[Stage, ActorRole] = field(default_factory=dict)
    panel: dict[PanelRole, str] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.current_stage is Stage.COMPLETED

    def approval_status(self, stage: Stage) -> ApprovalStatus:
        return self.approvals.get(stage, ApprovalStatus.PENDING)

    def copy(self) -> StudentProgressRecord:
        return StudentProgressRecord(
            student_id=self.student_id,
            program=self.program,
            current_stage=self.current_stage,
            stage_scores=dict(self.stage_scores),
            approvals=dict(self.approvals),
            approved_by=dict(self.approved_by),
            panel=dict(self.panel),
        )


@dataclass(slots=True, frozen=True)
class ApprovalOutcome:
    record: StudentProgressRecord
    stage: Stage
    composite: int
    already_approved: bool = False


@dataclass(slots=True, frozen=True)
class PanelVote:
    student_id: int | str
    stage: Stage
    panel_member: str
    decision: VoteDecision
    panel_role: PanelRole | None = None
    comment: str | None = None


@dataclass(slots=True, frozen=True)
class Defence:
    """A sitting at which one or more students defend the same stage."""

    defence_id: int | None
    stage: Stage
    scheduled_for: datetime
    student_ids: tuple[int | str, ...]
    venue: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def status(self) -> DefenceStatus:
        if self.ended_at is not None:
            return DefenceStatus.ENDED
        if self.started_at is not None:
            return DefenceStatus.IN_PROGRESS
        return DefenceStatus.SCHEDULED

    @property
    def running(self) -> bool:
        return self.status is DefenceStatus.IN_PROGRESS
