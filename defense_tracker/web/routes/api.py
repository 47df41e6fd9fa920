from __future__ import annotations

import io
import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from defense_tracker.application import api as app_api
from defense_tracker.domain.models import PanelRole, Stage
from defense_tracker.infrastructure.exceptions import ConcurrencyConflictError
from defense_tracker.infrastructure.notifications import DatabaseNotifier
from defense_tracker.web.dependencies import get_db_session
from defense_tracker.web.schemas import (
    AcademicSessionRequest,
    AcademicSessionResponse,
    AdvanceRequest,
    ApprovalRequest,
    ApprovalResponse,
    AssignedStudent,
    CompositeResponse,
    CriterionRequest,
    DefenceActionRequest,
    DefenceResponse,
    DefenceScheduleRequest,
    NotificationResponse,
    PanelAssignmentRequest,
    PanelAssignmentResponse,
    PanelVoteRequest,
    PanelVoteResponse,
    ProgressReportRow,
    RubricResponse,
    ScoreSheetRequest,
    ScoreSheetResponse,
    StudentCreateRequest,
    StudentProgress,
)

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)


def _commit(db: Session, student_id: int | None = None) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrencyConflictError(str(exc), student_id=student_id) from exc


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


# ----- academic sessions -----


@router.post(
    "/sessions", response_model=AcademicSessionResponse, status_code=status.HTTP_201_CREATED
)
def create_academic_session(
    payload: AcademicSessionRequest, db: Session = Depends(get_db_session)
) -> AcademicSessionResponse:
    try:
        created = app_api.create_academic_session(db, **payload.model_dump())
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return AcademicSessionResponse.model_validate(created, from_attributes=True)


@router.get("/sessions", response_model=list[AcademicSessionResponse])
def list_academic_sessions(
    department: str = Query(..., min_length=1), db: Session = Depends(get_db_session)
) -> list[AcademicSessionResponse]:
    return [
        AcademicSessionResponse.model_validate(s, from_attributes=True)
        for s in app_api.list_academic_sessions(db, department)
    ]


# ----- students -----


@router.post("/students", response_model=StudentProgress, status_code=status.HTTP_201_CREATED)
def create_student(payload: StudentCreateRequest, db: Session = Depends(get_db_session)) -> StudentProgress:
    try:
        created = app_api.enroll_student(db, payload.model_dump())
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return StudentProgress(**app_api.get_student_progress(db, created["student_id"]))


@router.get("/students/{student_id}/progress", response_model=StudentProgress)
def get_student_progress(student_id: int, db: Session = Depends(get_db_session)) -> StudentProgress:
    return StudentProgress(**app_api.get_student_progress(db, student_id))


# ----- rubrics -----


@router.get("/rubrics/{stage}", response_model=RubricResponse)
def get_rubric(stage: Stage, db: Session = Depends(get_db_session)) -> RubricResponse:
    return RubricResponse(**app_api.get_rubric(db, stage.value))


@router.post(
    "/rubrics/{stage}/criteria", response_model=RubricResponse, status_code=status.HTTP_201_CREATED
)
def add_rubric_criterion(
    stage: Stage, payload: CriterionRequest, db: Session = Depends(get_db_session)
) -> RubricResponse:
    try:
        rubric = app_api.add_rubric_criterion(db, stage.value, payload.title, payload.percentage)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return RubricResponse(**rubric)


@router.delete("/rubrics/{stage}/criteria/{title}", response_model=RubricResponse)
def remove_rubric_criterion(
    stage: Stage, title: str, db: Session = Depends(get_db_session)
) -> RubricResponse:
    try:
        app_api.remove_rubric_criterion(db, stage.value, title)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return RubricResponse(**app_api.get_rubric(db, stage.value))


@router.post("/rubrics/{stage}/publish", response_model=RubricResponse)
def publish_rubric(stage: Stage, db: Session = Depends(get_db_session)) -> RubricResponse:
    try:
        app_api.publish_rubric(db, stage.value)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return RubricResponse(**app_api.get_rubric(db, stage.value))


# ----- scoring and workflow -----


@router.post(
    "/students/{student_id}/stages/{stage}/scores",
    response_model=ScoreSheetResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_scores(
    student_id: int,
    stage: Stage,
    payload: ScoreSheetRequest,
    db: Session = Depends(get_db_session),
) -> ScoreSheetResponse:
    try:
        result = app_api.submit_scores(
            db, student_id, stage.value, payload.panel_member, payload.scores
        )
        _commit(db, student_id)
    except Exception:
        db.rollback()
        raise
    return ScoreSheetResponse(**result)


@router.get("/students/{student_id}/stages/{stage}/composite", response_model=CompositeResponse)
def get_composite(
    student_id: int, stage: Stage, db: Session = Depends(get_db_session)
) -> CompositeResponse:
    composite = app_api.get_composite(db, student_id, stage.value)
    return CompositeResponse(student_id=student_id, stage=stage.value, composite=composite)


@router.post("/students/{student_id}/stages/{stage}/approve", response_model=ApprovalResponse)
def approve_stage(
    student_id: int,
    stage: Stage,
    payload: ApprovalRequest,
    db: Session = Depends(get_db_session),
) -> ApprovalResponse:
    try:
        outcome = app_api.approve_stage(
            db,
            student_id,
            stage.value,
            payload.actor_role,
            payload.actor,
            notifier=DatabaseNotifier(db),
        )
        _commit(db, student_id)
    except Exception:
        db.rollback()
        raise
    return ApprovalResponse(
        student_id=student_id,
        stage=outcome.stage.value,
        composite=outcome.composite,
        already_approved=outcome.already_approved,
        current_stage=outcome.record.current_stage.value,
    )


@router.post("/students/{student_id}/advance", response_model=StudentProgress)
def advance_student(
    student_id: int,
    payload: AdvanceRequest | None = None,
    db: Session = Depends(get_db_session),
) -> StudentProgress:
    payload = payload or AdvanceRequest()
    try:
        app_api.advance_student(
            db, student_id, payload.actor_role, payload.actor, notifier=DatabaseNotifier(db)
        )
        _commit(db, student_id)
    except Exception:
        db.rollback()
        raise
    return StudentProgress(**app_api.get_student_progress(db, student_id))


# ----- panel -----


@router.put("/students/{student_id}/panel/{role}", response_model=PanelAssignmentResponse)
def assign_panel_role(
    student_id: int,
    role: PanelRole,
    payload: PanelAssignmentRequest,
    db: Session = Depends(get_db_session),
) -> PanelAssignmentResponse:
    try:
        previous = app_api.assign_panel_role(
            db, student_id, role.value, payload.assignee, payload.actor
        )
        _commit(db, student_id)
    except Exception:
        db.rollback()
        raise
    panel = app_api.list_panel(db, student_id)
    return PanelAssignmentResponse(role=role.value, assignee=panel[role], previous=previous)


@router.get("/students/{student_id}/panel", response_model=dict[str, str])
def list_panel(student_id: int, db: Session = Depends(get_db_session)) -> dict[str, str]:
    return {role.value: who for role, who in app_api.list_panel(db, student_id).items()}


@router.post(
    "/students/{student_id}/stages/{stage}/votes",
    response_model=PanelVoteResponse,
    status_code=status.HTTP_201_CREATED,
)
def cast_panel_vote(
    student_id: int,
    stage: Stage,
    payload: PanelVoteRequest,
    db: Session = Depends(get_db_session),
) -> PanelVoteResponse:
    try:
        vote = app_api.cast_panel_vote(
            db, student_id, stage.value, payload.panel_member, payload.decision, payload.comment
        )
        _commit(db, student_id)
    except Exception:
        db.rollback()
        raise
    return _vote_response(vote)


@router.get("/students/{student_id}/stages/{stage}/votes", response_model=list[PanelVoteResponse])
def list_panel_votes(
    student_id: int, stage: Stage, db: Session = Depends(get_db_session)
) -> list[PanelVoteResponse]:
    return [_vote_response(vote) for vote in app_api.list_panel_votes(db, student_id, stage.value)]


def _vote_response(vote) -> PanelVoteResponse:
    return PanelVoteResponse(
        student_id=vote.student_id,
        stage=vote.stage.value,
        panel_member=vote.panel_member,
        panel_role=vote.panel_role.value if vote.panel_role else None,
        decision=vote.decision.value,
        comment=vote.comment,
    )


@router.get("/panel-members/{assignee}/students", response_model=list[AssignedStudent])
def list_assigned_students(
    assignee: str, db: Session = Depends(get_db_session)
) -> list[AssignedStudent]:
    return [AssignedStudent(**row) for row in app_api.list_assigned_students(db, assignee)]


# ----- defences -----


@router.get("/defences", response_model=list[DefenceResponse])
def list_defences(
    stage: Stage | None = None, db: Session = Depends(get_db_session)
) -> list[DefenceResponse]:
    return [
        DefenceResponse(**d) for d in app_api.list_defences(db, stage.value if stage else None)
    ]


@router.get("/defences/{defence_id}", response_model=DefenceResponse)
def get_defence(defence_id: int, db: Session = Depends(get_db_session)) -> DefenceResponse:
    return DefenceResponse(**app_api.get_defence(db, defence_id))


@router.post("/defences", response_model=DefenceResponse, status_code=status.HTTP_201_CREATED)
def schedule_defence(
    payload: DefenceScheduleRequest, db: Session = Depends(get_db_session)
) -> DefenceResponse:
    try:
        defence = app_api.schedule_defence(
            db,
            payload.model_dump(exclude={"actor"}),
            actor=payload.actor,
            notifier=DatabaseNotifier(db),
        )
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return DefenceResponse(**defence)


@router.post("/defences/{defence_id}/start", response_model=DefenceResponse)
def start_defence(
    defence_id: int,
    payload: DefenceActionRequest | None = None,
    db: Session = Depends(get_db_session),
) -> DefenceResponse:
    payload = payload or DefenceActionRequest()
    try:
        defence = app_api.start_defence(db, defence_id, payload.actor)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return DefenceResponse(**defence)


@router.post("/defences/{defence_id}/end", response_model=DefenceResponse)
def end_defence(
    defence_id: int,
    payload: DefenceActionRequest | None = None,
    db: Session = Depends(get_db_session),
) -> DefenceResponse:
    payload = payload or DefenceActionRequest()
    try:
        defence = app_api.end_defence(db, defence_id, payload.actor)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return DefenceResponse(**defence)


# ----- notifications and reports -----


@router.get("/notifications", response_model=list[NotificationResponse])
def list_notifications(
    recipient: str = Query(..., min_length=1),
    unread_only: bool = False,
    db: Session = Depends(get_db_session),
) -> list[NotificationResponse]:
    return [
        _notification_response(n)
        for n in app_api.list_notifications(db, recipient, unread_only=unread_only)
    ]


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int, db: Session = Depends(get_db_session)
) -> NotificationResponse:
    try:
        notification = app_api.mark_notification_read(db, notification_id)
        _commit(db)
    except Exception:
        db.rollback()
        raise
    return _notification_response(notification)


def _notification_response(n) -> NotificationResponse:
    return NotificationResponse(
        id=n.id,
        recipient=n.recipient,
        role=n.role,
        message=n.message,
        read=n.read,
        created_at=n.created_at,
    )


@router.get("/reports/progress", response_model=list[ProgressReportRow])
def progress_report(
    program: str | None = Query(None, pattern="^(msc|phd)$"),
    db: Session = Depends(get_db_session),
) -> list[ProgressReportRow]:
    df = app_api.cohort_progress_report(db, program=program)
    records = df.astype(object).where(df.notna(), None).to_dict(orient="records")
    return [ProgressReportRow(**record) for record in records]


@router.get("/reports/progress.csv")
def progress_report_csv(
    program: str | None = Query(None, pattern="^(msc|phd)$"),
    db: Session = Depends(get_db_session),
) -> StreamingResponse:
    content = app_api.progress_report_csv(db, program=program)
    return StreamingResponse(
        io.BytesIO(content.encode("utf-8")),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="progress_report.csv"'},
    )
