from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..infrastructure.config import Settings, get_settings
from ..infrastructure.exceptions import (
    AlreadyCompletedError,
    ConcurrencyConflictError,
    DefenceNotRunningError,
    IntegrityError,
    NoRubricPublishedError,
    ScoringClosedError,
    StageMismatchError,
    ValidationError,
    handle_database_error,
)
from ..infrastructure.models import DefenceORM, StudentORM, utcnow
from ..infrastructure.notifications import DatabaseNotifier, Notification, Notifier, dispatch
from ..infrastructure.repositories import (
    ActivityLogRepo,
    DefenceRepo,
    PanelRepo,
    PanelVoteRepo,
    RubricRepo,
    ScoreSheetRepo,
    StudentRepo,
)
from . import defence as defence_rules
from . import panel as panel_rules
from . import progression
from .criteria import CriterionSet
from .models import (
    ActorRole,
    ApprovalOutcome,
    ApprovalStatus,
    Criterion,
    Defence,
    PanelRole,
    PanelVote,
    Program,
    Rubric,
    Stage,
    StudentProgressRecord,
    VoteDecision,
)
from .scoring import aggregate_panel_scores, validate_score_entries

STAGE_LABELS = {
    Stage.START: "Start",
    Stage.PROPOSAL: "Proposal",
    Stage.INTERNAL_DEFENSE: "Internal Defense",
    Stage.PROPOSAL_DEFENSE: "Proposal Defense",
    Stage.SECOND_SEMINAR: "2nd Seminar",
    Stage.THIRD_SEMINAR: "3rd Seminar",
    Stage.EXTERNAL_DEFENSE: "External Defense",
    Stage.COMPLETED: "Completed",
}


def to_record(student: StudentORM) -> StudentProgressRecord:
    """Rebuild the engine's view of a student from its ORM rows."""
    record = StudentProgressRecord(
        student_id=student.id,
        program=Program(student.program),
        current_stage=Stage(student.current_stage),
    )
    for approval in student.approvals:
        stage = Stage(approval.stage)
        record.approvals[stage] = ApprovalStatus(approval.status)
        if approval.status == ApprovalStatus.APPROVED.value:
            record.stage_scores[stage] = int(approval.composite_score or 0)
            if approval.approved_by_role:
                record.approved_by[stage] = ActorRole(approval.approved_by_role)
    for assignment in student.panel:
        record.panel[PanelRole(assignment.role)] = assignment.assignee
    return record


def to_defence(row: DefenceORM) -> Defence:
    return Defence(
        defence_id=row.id,
        stage=Stage(row.stage),
        scheduled_for=row.scheduled_for,
        student_ids=tuple(student.id for student in row.students),
        venue=row.venue,
        started_at=row.started_at,
        ended_at=row.ended_at,
    )


def panel_notifications(student: StudentORM, message: str) -> list[Notification]:
    """One notification for the student and one per panel member."""
    notes = [Notification(recipient=student.matric_no, role="student", message=message)]
    for assignment in student.panel:
        notes.append(
            Notification(recipient=assignment.assignee, role=assignment.role, message=message)
        )
    return notes


def flush_or_raise(
    s: Session, logger: logging.Logger, operation: str, student_id: int | None = None
) -> None:
    """Flush pending writes, turning a failed version check into ConcurrencyConflictError."""
    try:
        s.flush()
    except StaleDataError as exc:
        logger.warning("Concurrent update during %s (student %s)", operation, student_id)
        raise ConcurrencyConflictError(str(exc), student_id=student_id) from exc
    except SQLAlchemyError as exc:
        logger.exception("Database error during %s for student %s", operation, student_id)
        raise handle_database_error(exc, operation) from exc


class RubricService:
    """
    Per-stage rubric drafts backed by the ``rubrics`` table.

    Drafts are edited through :class:`CriterionSet` so the same duplicate and
    weight rules apply whether a rubric is built in memory or in the database.
    """

    def __init__(self, s: Session, logger: logging.Logger | None = None):
        self.s = s
        self.logger = logger or logging.getLogger(__name__)
        self.rubrics = RubricRepo(s)

    def get_draft(self, stage: Stage) -> CriterionSet:
        stage = Stage(stage)
        rubric = self.rubrics.get_for_stage(stage.value)
        criteria_set = CriterionSet(stage=stage)
        if rubric is None:
            return criteria_set
        for row in rubric.criteria:
            criteria_set.add_criterion(row.title, Decimal(row.percentage))
        if rubric.published:
            criteria_set.publish(stage)
        return criteria_set

    def _save(self, stage: Stage, criteria_set: CriterionSet) -> None:
        rubric = self.rubrics.get_or_create(stage.value)
        self.rubrics.replace_criteria(
            rubric, [(c.title, c.percentage) for c in criteria_set.criteria]
        )

    def add_criterion(self, stage: Stage, title: str, percentage: object) -> Criterion:
        stage = Stage(stage)
        criteria_set = self.get_draft(stage)
        criterion = criteria_set.add_criterion(title, percentage)
        self._save(stage, criteria_set)
        self.logger.info(
            "Added criterion '%s' (%s%%) to %s rubric", criterion.title, criterion.percentage, stage.value
        )
        return criterion

    def remove_criterion(self, stage: Stage, title: str) -> Criterion | None:
        stage = Stage(stage)
        criteria_set = self.get_draft(stage)
        removed = criteria_set.remove_criterion(title)
        if removed is not None:
            self._save(stage, criteria_set)
            self.logger.info("Removed criterion '%s' from %s rubric", removed.title, stage.value)
        return removed

    def is_publishable(self, stage: Stage) -> bool:
        return self.get_draft(stage).is_publishable()

    def publish(self, stage: Stage) -> Rubric:
        stage = Stage(stage)
        published = self.get_draft(stage).publish(stage)
        rubric = self.rubrics.get_or_create(stage.value)
        self.rubrics.update(rubric, published=True, published_at=utcnow())
        self.logger.info(
            "Published %s rubric with %d criteria", stage.value, len(published.criteria)
        )
        return published

    def get_published(self, stage: Stage) -> Rubric | None:
        rubric = self.rubrics.get_for_stage(Stage(stage).value)
        if rubric is None or not rubric.published:
            return None
        return Rubric(
            stage=Stage(rubric.stage),
            criteria=tuple(Criterion(r.title, Decimal(r.percentage)) for r in rubric.criteria),
        )


class ProgressionService:
    """
    Applies the stage-progression rules to persisted students.

    Every mutation bumps the student's version column, so two writers racing
    on the same student cannot both succeed; the loser gets
    :class:`ConcurrencyConflictError` and nothing is retried here.
    """

    def __init__(
        self,
        s: Session,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
    ):
        self.s = s
        self.logger = logger or logging.getLogger(__name__)
        self.settings = settings or get_settings()
        self.notifier = notifier if notifier is not None else DatabaseNotifier(s)
        self.students = StudentRepo(s)
        self.sheets = ScoreSheetRepo(s)
        self.panel = PanelRepo(s)
        self.votes = PanelVoteRepo(s)
        self.defences = DefenceRepo(s)
        self.activity = ActivityLogRepo(s)
        self.rubrics = RubricService(s, logger=self.logger)

    # ----- helpers -----

    def _flush(self, operation: str, student_id: int | None = None) -> None:
        flush_or_raise(self.s, self.logger, operation, student_id)

    def _claim(self, student: StudentORM, operation: str) -> None:
        """Bump the student's version before any of its child rows change."""
        self.students.touch(student)
        self._flush(operation, student.id)

    # ----- students -----

    def enroll_student(
        self,
        matric_no: str,
        full_name: str,
        program: Program,
        department: str,
        academic_session_id: int | None = None,
        project_topic: str | None = None,
    ) -> StudentProgressRecord:
        if self.students.get_by_matric_no(matric_no) is not None:
            raise IntegrityError(
                f"Student with matric number {matric_no} already exists", constraint="unique"
            )
        student = self.students.create(
            matric_no=matric_no,
            full_name=full_name,
            program=Program(program).value,
            department=department,
            academic_session_id=academic_session_id,
            project_topic=project_topic,
            current_stage=Stage.START.value,
        )
        self.activity.record("enroll", "Student", student.id, details={"program": student.program})
        self.logger.info("Enrolled %s student %s as id %s", student.program, matric_no, student.id)
        return to_record(student)

    def get_record(self, student_id: int) -> StudentProgressRecord:
        return to_record(self.students.get_required(student_id))

    # ----- scoring -----

    def submit_scores(
        self,
        student_id: int,
        stage: Stage,
        panel_member: str,
        scores: dict[str, object],
    ) -> dict[str, int | None]:
        """
        Store one panel member's score sheet for the student's current stage.

        Raises:
            StageMismatchError: ``stage`` is not the current stage
            ScoringClosedError: the stage is already approved
            NoRubricPublishedError: the stage has no published rubric
            ValidationError: a title is not part of the rubric
            ScoreOutOfRangeError: a score is not an integer in 0..100
            DefenceNotRunningError: no defence of ``stage`` is in progress for the student
        """
        stage = Stage(stage)
        student = self.students.get_required(student_id)
        record = to_record(student)
        if record.completed:
            raise AlreadyCompletedError(student_id)
        if stage is not record.current_stage:
            raise StageMismatchError(student_id, stage.value, record.current_stage.value)
        if record.approval_status(stage) is ApprovalStatus.APPROVED:
            raise ScoringClosedError(student_id, stage.value)

        rubric = self.rubrics.get_published(stage)
        if rubric is None:
            raise NoRubricPublishedError(stage.value)

        validated = validate_score_entries(scores)
        normalized: dict[str, int | None] = {}
        for title, value in validated.items():
            criterion = rubric.find(title)
            if criterion is None:
                raise ValidationError(
                    "criterion", f"'{title}' is not part of the {stage.value} rubric", title
                )
            normalized[criterion.title] = value

        panel_member = (panel_member or "").strip()
        if not panel_member:
            raise ValidationError("panel_member", "cannot be empty", panel_member)
        running = self.defences.running_for_student(student.id, stage.value)
        if not any(defence_rules.accepts_scores(to_defence(d), student.id, stage) for d in running):
            raise DefenceNotRunningError(student_id, stage.value)
        self._claim(student, "submit_scores")
        self.sheets.upsert(student.id, stage.value, panel_member, normalized)
        self._flush("submit_scores", student.id)
        self.logger.info(
            "Stored %d scores from %s for student %s at %s",
            len(normalized),
            panel_member,
            student_id,
            stage.value,
        )
        return normalized

    def composite(self, student_id: int, stage: Stage) -> int:
        """Current composite for ``stage`` from every submitted sheet (0 without a rubric)."""
        stage = Stage(stage)
        self.students.get_required(student_id)
        rubric = self.rubrics.get_published(stage)
        if rubric is None:
            return 0
        sheets = [sheet.scores for sheet in self.sheets.list_for_stage(student_id, stage.value)]
        return aggregate_panel_scores(rubric.criteria, sheets)

    # ----- approval / advancement -----

    def approve(
        self,
        student_id: int,
        stage: Stage,
        actor_role: ActorRole,
        actor: str | None = None,
    ) -> ApprovalOutcome:
        stage = Stage(stage)
        actor_role = ActorRole(actor_role)
        student = self.students.get_required(student_id)
        record = to_record(student)

        composite = 0
        if stage is not Stage.COMPLETED:
            rubric = self.rubrics.get_published(stage)
            if (
                rubric is None
                and stage is not Stage.START
                and self.settings.app.require_rubric_for_approval
                and stage is record.current_stage
            ):
                raise NoRubricPublishedError(stage.value)
            if rubric is not None:
                sheets = [s.scores for s in self.sheets.list_for_stage(student.id, stage.value)]
                composite = aggregate_panel_scores(rubric.criteria, sheets)

        outcome = progression.approve(record, stage, actor_role, composite)
        if outcome.already_approved:
            self.logger.info(
                "Stage %s of student %s already approved; keeping score %s",
                stage.value,
                student_id,
                outcome.composite,
            )
            return outcome

        self._claim(student, "approve")
        self.students.upsert_approval(
            student,
            stage.value,
            status=ApprovalStatus.APPROVED.value,
            composite_score=outcome.composite,
            approved_by_role=actor_role.value,
            approved_by=actor,
            approved_at=utcnow(),
        )
        self.activity.record(
            "approve_stage",
            "Student",
            student.id,
            actor=actor,
            role=actor_role.value,
            details={"stage": stage.value, "composite": outcome.composite},
        )
        self._flush("approve", student.id)
        self.logger.info(
            "Approved %s for student %s with composite %s (by %s)",
            stage.value,
            student_id,
            outcome.composite,
            actor_role.value,
        )

        if self.settings.app.notify_on_approve:
            message = (
                f"{STAGE_LABELS[stage]} approved for {student.matric_no} "
                f"with a score of {outcome.composite}."
            )
            dispatch(self.notifier, panel_notifications(student, message))
        return outcome

    def advance(
        self,
        student_id: int,
        actor_role: ActorRole | None = None,
        actor: str | None = None,
    ) -> StudentProgressRecord:
        student = self.students.get_required(student_id)
        record = to_record(student)
        updated = progression.advance(record)

        student.current_stage = updated.current_stage.value
        self.students.touch(student)
        self.activity.record(
            "advance_stage",
            "Student",
            student.id,
            actor=actor,
            role=ActorRole(actor_role).value if actor_role else None,
            details={"from": record.current_stage.value, "to": updated.current_stage.value},
        )
        self._flush("advance", student.id)
        self.logger.info(
            "Advanced student %s from %s to %s",
            student_id,
            record.current_stage.value,
            updated.current_stage.value,
        )

        if self.settings.app.notify_on_advance:
            if updated.completed:
                message = f"{student.matric_no} has completed all defense stages."
            else:
                message = f"{student.matric_no} has moved to {STAGE_LABELS[updated.current_stage]}."
            dispatch(self.notifier, panel_notifications(student, message))
        return updated

    # ----- panel -----

    def assign_panel_role(
        self, student_id: int, role: PanelRole, assignee: str, actor: str | None = None
    ) -> str | None:
        student = self.students.get_required(student_id)
        updated, previous = panel_rules.assign_panel_role(to_record(student), role, assignee)
        role = PanelRole(role)
        self._claim(student, "assign_panel_role")
        self.panel.assign(student, role.value, updated.panel[role])
        self.activity.record(
            "assign_panel_role",
            "Student",
            student.id,
            actor=actor,
            details={"role": role.value, "assignee": updated.panel[role], "previous": previous},
        )
        self._flush("assign_panel_role", student.id)
        if previous and previous != updated.panel[role]:
            self.logger.info(
                "Replaced %s of student %s: %s -> %s", role.value, student_id, previous, assignee
            )
        return previous

    def list_panel(self, student_id: int) -> dict[PanelRole, str]:
        return panel_rules.list_panel(self.get_record(student_id))

    def cast_vote(
        self,
        student_id: int,
        stage: Stage,
        panel_member: str,
        decision: VoteDecision,
        comment: str | None = None,
    ) -> PanelVote:
        record = self.get_record(student_id)
        vote = panel_rules.cast_vote(record, stage, panel_member, decision, comment)
        self.votes.create(
            student_id=record.student_id,
            stage=vote.stage.value,
            panel_member=vote.panel_member,
            panel_role=vote.panel_role.value if vote.panel_role else None,
            decision=vote.decision.value,
            comment=vote.comment,
        )
        self.logger.info(
            "Recorded %s vote from %s on %s for student %s",
            vote.decision.value,
            vote.panel_member,
            vote.stage.value,
            student_id,
        )
        return vote

    def list_votes(self, student_id: int, stage: Stage) -> list[PanelVote]:
        self.students.get_required(student_id)
        return [
            PanelVote(
                student_id=row.student_id,
                stage=Stage(row.stage),
                panel_member=row.panel_member,
                decision=VoteDecision(row.decision),
                panel_role=PanelRole(row.panel_role) if row.panel_role else None,
                comment=row.comment,
            )
            for row in self.votes.list_for_stage(student_id, Stage(stage).value)
        ]


class DefenceService:
    """
    Schedules defence sittings and moves them from scheduled to in progress to ended.

    Starting a defence opens score entry for its students at its stage and
    ending it closes score entry again. Defence rows carry their own version
    column, so two writers starting or ending the same defence cannot both win.
    """

    def __init__(
        self,
        s: Session,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
    ):
        self.s = s
        self.logger = logger or logging.getLogger(__name__)
        self.settings = settings or get_settings()
        self.notifier = notifier if notifier is not None else DatabaseNotifier(s)
        self.defences = DefenceRepo(s)
        self.students = StudentRepo(s)
        self.activity = ActivityLogRepo(s)

    def get(self, defence_id: int) -> Defence:
        return to_defence(self.defences.get_required(defence_id))

    def list_defences(self, stage: Stage | None = None) -> list[Defence]:
        rows = self.defences.list_for_stage(Stage(stage).value if stage else None)
        return [to_defence(row) for row in rows]

    def schedule(
        self,
        stage: Stage,
        scheduled_for: datetime,
        student_ids: list[int],
        venue: str | None = None,
        actor: str | None = None,
    ) -> Defence:
        students = [self.students.get_required(student_id) for student_id in student_ids]
        planned = defence_rules.schedule_defence(
            [to_record(student) for student in students], stage, scheduled_for, venue
        )
        row = self.defences.create(
            students,
            stage=planned.stage.value,
            scheduled_for=planned.scheduled_for,
            venue=planned.venue,
        )
        self.activity.record(
            "schedule_defence",
            "Defence",
            row.id,
            actor=actor,
            details={"stage": planned.stage.value, "student_ids": list(planned.student_ids)},
        )
        flush_or_raise(self.s, self.logger, "schedule_defence")
        self.logger.info(
            "Scheduled %s defence %s for %d students on %s",
            planned.stage.value,
            row.id,
            len(students),
            planned.scheduled_for.isoformat(),
        )

        if self.settings.app.notify_on_schedule:
            when = planned.scheduled_for.strftime("%Y-%m-%d %H:%M")
            where = f" at {planned.venue}" if planned.venue else ""
            notes: list[Notification] = []
            for student in students:
                message = (
                    f"{STAGE_LABELS[planned.stage]} defence of {student.matric_no} "
                    f"scheduled for {when}{where}."
                )
                notes.extend(panel_notifications(student, message))
            dispatch(self.notifier, notes)
        return to_defence(row)

    def start(self, defence_id: int, actor: str | None = None) -> Defence:
        row = self.defences.get_required(defence_id)
        started = defence_rules.start_defence(to_defence(row), utcnow())
        row.started_at = started.started_at
        flush_or_raise(self.s, self.logger, "start_defence")
        self.activity.record("start_defence", "Defence", row.id, actor=actor)
        self.logger.info("Started %s defence %s", started.stage.value, defence_id)
        return started

    def end(self, defence_id: int, actor: str | None = None) -> Defence:
        row = self.defences.get_required(defence_id)
        ended = defence_rules.end_defence(to_defence(row), utcnow())
        row.ended_at = ended.ended_at
        flush_or_raise(self.s, self.logger, "end_defence")
        self.activity.record("end_defence", "Defence", row.id, actor=actor)
        self.logger.info("Ended %s defence %s", ended.stage.value, defence_id)
        return ended
