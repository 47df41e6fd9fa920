"""
Application API layer with input validation and logging.

These functions are what the web routes and scripts call: they validate raw
payloads with the pydantic schemas, run the progression services and turn
the results into plain data.
"""

from __future__ import annotations

from typing import Any

import pandas as pd
from sqlalchemy.orm import Session

from ..domain.models import (
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
)
from ..domain.progression import stage_sequence
from ..domain.schemas import (
    AcademicSessionInput,
    ApprovalInput,
    CriterionInput,
    DefenceScheduleInput,
    PanelAssignmentInput,
    PanelVoteInput,
    ScoreSheetInput,
    StudentEnrollmentInput,
    ValidationResponse,
    validate_input,
)
from ..domain.services import STAGE_LABELS, DefenceService, ProgressionService, RubricService
from ..infrastructure.exceptions import IntegrityError, NotificationNotFoundError, ValidationError
from ..infrastructure.logging import get_logger, log_operation, set_context
from ..infrastructure.models import AcademicSessionORM, NotificationORM
from ..infrastructure.notifications import Notifier
from ..infrastructure.repositories import (
    AcademicSessionRepo,
    NotificationRepo,
    PanelRepo,
    StudentRepo,
)

logger = get_logger(__name__)

REPORT_COLUMNS = [
    "StudentID",
    "MatricNo",
    "Name",
    "Program",
    "Department",
    "CurrentStage",
    "StagesApproved",
    "StagesTotal",
    "PercentComplete",
    "LatestScore",
    "Completed",
]


def _validated(schema: type, data: dict[str, Any], what: str) -> dict[str, Any]:
    result: ValidationResponse = validate_input(schema, data)
    if not result.success:
        error_msg = "; ".join(f"{e.field}: {e.message}" for e in result.errors)
        logger.warning("%s validation failed: %s", what, error_msg)
        field = result.errors[0].field if len(result.errors) == 1 else what
        raise ValidationError(field, error_msg)
    if result.data is None:
        raise RuntimeError("Validation succeeded but returned no data")
    return result.data


def record_to_dict(record: StudentProgressRecord) -> dict[str, Any]:
    """Serialisable view of a progress record, stages in programme order."""
    stages = []
    for stage in stage_sequence(record.program):
        stages.append(
            {
                "stage": stage.value,
                "label": STAGE_LABELS[stage],
                "status": record.approval_status(stage).value,
                "score": record.stage_scores.get(stage),
                "approved_by": (
                    record.approved_by[stage].value if stage in record.approved_by else None
                ),
            }
        )
    return {
        "student_id": record.student_id,
        "program": record.program.value,
        "current_stage": record.current_stage.value,
        "completed": record.completed,
        "stages": stages,
        "panel": {role.value: who for role, who in record.panel.items()},
    }


def rubric_to_dict(stage: Stage, criteria: tuple[Criterion, ...], published: bool) -> dict[str, Any]:
    total = sum((c.percentage for c in criteria), start=0)
    return {
        "stage": Stage(stage).value,
        "published": published,
        "total_percentage": float(total),
        "criteria": [{"title": c.title, "percentage": float(c.percentage)} for c in criteria],
    }


# ---------------------------------------------------------------------------
# Sessions and students
# ---------------------------------------------------------------------------


@log_operation("create_academic_session")
def create_academic_session(
    session: Session,
    name: str,
    department: str,
    faculty: str | None = None,
    start_date: Any = None,
    end_date: Any = None,
) -> AcademicSessionORM:
    """
    Create an academic session (e.g. ``2024/2025``) for a department.

    Raises:
        ValidationError: If the name or dates are invalid
        IntegrityError: If the department already has a session with this name
    """
    data = _validated(
        AcademicSessionInput,
        {
            "name": name,
            "department": department,
            "faculty": faculty,
            "start_date": start_date,
            "end_date": end_date,
        },
        "academic_session",
    )
    repo = AcademicSessionRepo(session)
    if repo.exists(
        AcademicSessionORM.department == data["department"], AcademicSessionORM.name == data["name"]
    ):
        raise IntegrityError(
            f"Session {data['name']} already exists for {data['department']}", constraint="unique"
        )
    session_obj = repo.create(**data)
    logger.info("Created academic session %s for %s", session_obj.name, session_obj.department)
    return session_obj


def list_academic_sessions(session: Session, department: str) -> list[AcademicSessionORM]:
    """Active sessions of ``department``, newest first."""
    return AcademicSessionRepo(session).active_for_department(department.strip())


@log_operation("enroll_student")
def enroll_student(session: Session, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Enroll a student at the Start stage of their programme.

    Example:
        >>> enroll_student(session, {"matric_no": "PG/2024/001", "full_name": "Ada Obi",
        ...                          "program": "msc", "department": "Physics"})["current_stage"]
        'start'
    """
    data = _validated(StudentEnrollmentInput, payload, "student")
    set_context(operation="enroll_student")
    record = ProgressionService(session).enroll_student(**data)
    return record_to_dict(record)


@log_operation("get_student_progress")
def get_student_progress(session: Session, student_id: int) -> dict[str, Any]:
    set_context(student_id=student_id)
    student = StudentRepo(session).get_required(student_id)
    data = record_to_dict(ProgressionService(session).get_record(student_id))
    data.update(
        {
            "matric_no": student.matric_no,
            "full_name": student.full_name,
            "department": student.department,
            "version": student.version,
        }
    )
    return data


# ---------------------------------------------------------------------------
# Rubrics
# ---------------------------------------------------------------------------


def get_rubric(session: Session, stage: str) -> dict[str, Any]:
    criteria_set = RubricService(session).get_draft(Stage(stage))
    return rubric_to_dict(Stage(stage), criteria_set.criteria, criteria_set.published)


@log_operation("add_rubric_criterion")
def add_rubric_criterion(
    session: Session, stage: str, title: str, percentage: Any
) -> dict[str, Any]:
    data = _validated(
        CriterionInput, {"stage": stage, "title": title, "percentage": percentage}, "criterion"
    )
    set_context(stage=data["stage"].value)
    service = RubricService(session)
    service.add_criterion(data["stage"], data["title"], data["percentage"])
    return get_rubric(session, data["stage"].value)


@log_operation("remove_rubric_criterion")
def remove_rubric_criterion(session: Session, stage: str, title: str) -> Criterion | None:
    return RubricService(session).remove_criterion(Stage(stage), title)


@log_operation("publish_rubric")
def publish_rubric(session: Session, stage: str) -> Rubric:
    set_context(stage=Stage(stage).value)
    return RubricService(session).publish(Stage(stage))


# ---------------------------------------------------------------------------
# Scoring and workflow
# ---------------------------------------------------------------------------


@log_operation("submit_scores")
def submit_scores(
    session: Session,
    student_id: int,
    stage: str,
    panel_member: str,
    scores: dict[str, Any],
    notifier: Notifier | None = None,
) -> dict[str, Any]:
    data = _validated(
        ScoreSheetInput,
        {"student_id": student_id, "stage": stage, "panel_member": panel_member, "scores": scores},
        "score_sheet",
    )
    set_context(student_id=student_id, stage=data["stage"].value)
    service = ProgressionService(session, notifier=notifier)
    stored = service.submit_scores(
        data["student_id"], data["stage"], data["panel_member"], data["scores"]
    )
    return {
        "student_id": student_id,
        "stage": data["stage"].value,
        "panel_member": data["panel_member"],
        "scores": stored,
        "composite": service.composite(student_id, data["stage"]),
    }


def get_composite(session: Session, student_id: int, stage: str) -> int:
    return ProgressionService(session).composite(student_id, Stage(stage))


@log_operation("approve_stage")
def approve_stage(
    session: Session,
    student_id: int,
    stage: str,
    actor_role: str,
    actor: str | None = None,
    notifier: Notifier | None = None,
) -> ApprovalOutcome:
    data = _validated(
        ApprovalInput,
        {"student_id": student_id, "stage": stage, "actor_role": actor_role, "actor": actor},
        "approval",
    )
    set_context(
        student_id=student_id, stage=data["stage"].value, actor_role=data["actor_role"].value
    )
    return ProgressionService(session, notifier=notifier).approve(
        data["student_id"], data["stage"], data["actor_role"], data["actor"]
    )


@log_operation("advance_student")
def advance_student(
    session: Session,
    student_id: int,
    actor_role: str | None = None,
    actor: str | None = None,
    notifier: Notifier | None = None,
) -> StudentProgressRecord:
    set_context(student_id=student_id)
    role = ActorRole(actor_role) if actor_role else None
    return ProgressionService(session, notifier=notifier).advance(student_id, role, actor)


# ---------------------------------------------------------------------------
# Panel
# ---------------------------------------------------------------------------


@log_operation("assign_panel_role")
def assign_panel_role(
    session: Session, student_id: int, role: str, assignee: str, actor: str | None = None
) -> str | None:
    data = _validated(
        PanelAssignmentInput,
        {"student_id": student_id, "role": role, "assignee": assignee},
        "panel_assignment",
    )
    set_context(student_id=student_id)
    return ProgressionService(session).assign_panel_role(
        data["student_id"], data["role"], data["assignee"], actor
    )


def list_panel(session: Session, student_id: int) -> dict[PanelRole, str]:
    return ProgressionService(session).list_panel(student_id)


@log_operation("cast_panel_vote")
def cast_panel_vote(
    session: Session,
    student_id: int,
    stage: str,
    panel_member: str,
    decision: str,
    comment: str | None = None,
) -> PanelVote:
    data = _validated(
        PanelVoteInput,
        {
            "student_id": student_id,
            "stage": stage,
            "panel_member": panel_member,
            "decision": decision,
            "comment": comment,
        },
        "panel_vote",
    )
    return ProgressionService(session).cast_vote(
        data["student_id"], data["stage"], data["panel_member"], data["decision"], data["comment"]
    )


def list_panel_votes(session: Session, student_id: int, stage: str) -> list[PanelVote]:
    return ProgressionService(session).list_votes(student_id, Stage(stage))


def list_notifications(
    session: Session, recipient: str, unread_only: bool = False
) -> list[NotificationORM]:
    return NotificationRepo(session).list_for_recipient(recipient, unread_only=unread_only)


@log_operation("mark_notification_read")
def mark_notification_read(session: Session, notification_id: int) -> NotificationORM:
    notification = NotificationRepo(session).mark_read(notification_id)
    if notification is None:
        raise NotificationNotFoundError(notification_id)
    return notification


def list_assigned_students(session: Session, assignee: str) -> list[dict[str, Any]]:
    """
    Students on whose panel ``assignee`` sits, one row per role held.

    Example:
        >>> list_assigned_students(session, "Dr. Bello")
        [{"student_id": 1, "matric_no": "PG/2024/001", "role": "major_supervisor", ...}]
    """
    rows = []
    for assignment in PanelRepo(session).students_for_assignee(assignee.strip()):
        student = assignment.student
        rows.append(
            {
                "student_id": student.id,
                "matric_no": student.matric_no,
                "full_name": student.full_name,
                "program": student.program,
                "current_stage": student.current_stage,
                "role": assignment.role,
            }
        )
    return rows


# ---------------------------------------------------------------------------
# Defences
# ---------------------------------------------------------------------------


def defence_to_dict(defence: Defence) -> dict[str, Any]:
    return {
        "defence_id": defence.defence_id,
        "stage": defence.stage.value,
        "label": STAGE_LABELS[defence.stage],
        "scheduled_for": defence.scheduled_for,
        "venue": defence.venue,
        "status": defence.status.value,
        "student_ids": list(defence.student_ids),
        "started_at": defence.started_at,
        "ended_at": defence.ended_at,
    }


@log_operation("schedule_defence")
def schedule_defence(
    session: Session,
    payload: dict[str, Any],
    actor: str | None = None,
    notifier: Notifier | None = None,
) -> dict[str, Any]:
    """
    Schedule a defence of one stage for one or more students.

    Example:
        >>> schedule_defence(session, {"stage": "proposal", "scheduled_for": "2026-11-02T10:00",
        ...                            "student_ids": [1, 2], "venue": "Senate Room"})["status"]
        'scheduled'
    """
    data = _validated(DefenceScheduleInput, payload, "defence")
    set_context(stage=data["stage"].value)
    defence = DefenceService(session, notifier=notifier).schedule(
        data["stage"], data["scheduled_for"], data["student_ids"], data["venue"], actor
    )
    return defence_to_dict(defence)


def get_defence(session: Session, defence_id: int) -> dict[str, Any]:
    return defence_to_dict(DefenceService(session).get(defence_id))


def list_defences(session: Session, stage: str | None = None) -> list[dict[str, Any]]:
    service = DefenceService(session)
    return [defence_to_dict(d) for d in service.list_defences(Stage(stage) if stage else None)]


@log_operation("start_defence")
def start_defence(session: Session, defence_id: int, actor: str | None = None) -> dict[str, Any]:
    return defence_to_dict(DefenceService(session).start(defence_id, actor))


@log_operation("end_defence")
def end_defence(session: Session, defence_id: int, actor: str | None = None) -> dict[str, Any]:
    """End a defence and report each student's composite for its stage."""
    defence = DefenceService(session).end(defence_id, actor)
    progression_service = ProgressionService(session)
    data = defence_to_dict(defence)
    data["composites"] = {
        str(student_id): progression_service.composite(int(student_id), defence.stage)
        for student_id in defence.student_ids
    }
    return data


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


@log_operation("cohort_progress_report")
def cohort_progress_report(session: Session, program: str | None = None) -> pd.DataFrame:
    """
    One row per student with their stage and approval progress.

    Returns:
        DataFrame with the columns in ``REPORT_COLUMNS``, ordered by matric number

    Example:
        >>> df = cohort_progress_report(session, program="phd")
        >>> df[["MatricNo", "CurrentStage", "PercentComplete"]].head()
    """
    program_value = Program(program).value if program else None
    students = StudentRepo(session).list_for_program(program_value)
    rows = []
    for student in students:
        sequence = stage_sequence(Program(student.program))
        approved = [
            a for a in student.approvals if a.status == ApprovalStatus.APPROVED.value
        ]
        order = {stage.value: i for i, stage in enumerate(sequence)}
        approved.sort(key=lambda a: order.get(a.stage, len(sequence)))
        rows.append(
            {
                "StudentID": student.id,
                "MatricNo": student.matric_no,
                "Name": student.full_name,
                "Program": student.program,
                "Department": student.department,
                "CurrentStage": STAGE_LABELS[Stage(student.current_stage)],
                "StagesApproved": len(approved),
                "StagesTotal": len(sequence),
                "PercentComplete": round(len(approved) / len(sequence) * 100, 1),
                "LatestScore": approved[-1].composite_score if approved else None,
                "Completed": student.current_stage == Stage.COMPLETED.value,
            }
        )

    df = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    logger.info("Built progress report for %d students", len(df))
    return df


def progress_report_csv(session: Session, program: str | None = None) -> str:
    return cohort_progress_report(session, program=program).to_csv(index=False)
