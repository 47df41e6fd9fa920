from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class StudentCreateRequest(BaseModel):
    matric_no: str
    full_name: str
    program: Literal["msc", "phd"]
    department: str
    academic_session_id: Optional[int] = None
    project_topic: Optional[str] = None


class StageProgress(BaseModel):
    stage: str
    label: str
    status: Literal["pending", "approved"]
    score: Optional[int] = None
    approved_by: Optional[str] = None


class StudentProgress(BaseModel):
    student_id: int
    program: str
    current_stage: str
    completed: bool
    stages: list[StageProgress]
    panel: dict[str, str] = Field(default_factory=dict)
    matric_no: Optional[str] = None
    full_name: Optional[str] = None
    department: Optional[str] = None
    version: Optional[int] = None


class CriterionRequest(BaseModel):
    title: str
    # Kept as Any so out-of-range and malformed weights reach the rubric rules.
    percentage: Any


class CriterionItem(BaseModel):
    title: str
    percentage: float


class RubricResponse(BaseModel):
    stage: str
    published: bool
    total_percentage: float
    criteria: list[CriterionItem]


class ScoreSheetRequest(BaseModel):
    panel_member: str
    scores: dict[str, Any] = Field(default_factory=dict)


class ScoreSheetResponse(BaseModel):
    student_id: int
    stage: str
    panel_member: str
    scores: dict[str, Optional[int]]
    composite: int


class CompositeResponse(BaseModel):
    student_id: int
    stage: str
    composite: int


class ApprovalRequest(BaseModel):
    actor_role: str
    actor: Optional[str] = None


class ApprovalResponse(BaseModel):
    student_id: int
    stage: str
    composite: int
    already_approved: bool
    current_stage: str


class AdvanceRequest(BaseModel):
    actor_role: Optional[str] = None
    actor: Optional[str] = None


class PanelAssignmentRequest(BaseModel):
    assignee: str
    actor: Optional[str] = None


class PanelAssignmentResponse(BaseModel):
    role: str
    assignee: str
    previous: Optional[str] = None


class PanelVoteRequest(BaseModel):
    panel_member: str
    decision: Literal["approve", "revise", "reject", "comment"]
    comment: Optional[str] = None


class PanelVoteResponse(BaseModel):
    student_id: int
    stage: str
    panel_member: str
    panel_role: Optional[str] = None
    decision: str
    comment: Optional[str] = None


class NotificationResponse(BaseModel):
    id: int
    recipient: str
    role: str
    message: str
    read: bool
    created_at: datetime


class AcademicSessionRequest(BaseModel):
    name: str
    department: str
    faculty: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class AcademicSessionResponse(BaseModel):
    id: int
    name: str
    department: str
    faculty: Optional[str] = None
    is_active: bool
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class AssignedStudent(BaseModel):
    student_id: int
    matric_no: str
    full_name: str
    program: str
    current_stage: str
    role: str


class DefenceScheduleRequest(BaseModel):
    stage: str
    scheduled_for: datetime
    student_ids: list[int]
    venue: Optional[str] = None
    actor: Optional[str] = None


class DefenceActionRequest(BaseModel):
    actor: Optional[str] = None


class DefenceResponse(BaseModel):
    defence_id: int
    stage: str
    label: str
    scheduled_for: datetime
    venue: Optional[str] = None
    status: Literal["scheduled", "in_progress", "ended"]
    student_ids: list[int]
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    composites: Optional[dict[str, int]] = None


class ProgressReportRow(BaseModel):
    StudentID: int
    MatricNo: str
    Name: str
    Program: str
    Department: str
    CurrentStage: str
    StagesApproved: int
    StagesTotal: int
    PercentComplete: float
    LatestScore: Optional[int] = None
    Completed: bool


class ErrorResponse(BaseModel):
    code: str
    detail: str
    details: dict[str, Any] = Field(default_factory=dict)
