"""
Pydantic schemas for input validation at the application boundary.

Forms and REST payloads are checked here once, before they reach the
progression engine.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from html import unescape
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import ActorRole, PanelRole, Program, Stage, VoteDecision


class BaseValidationSchema(BaseModel):
    """Base schema with common sanitising of string inputs."""

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @field_validator("*", mode="before")
    def sanitize_strings(cls, v):
        if isinstance(v, str):
            cleaned = unescape(v.strip())
            cleaned = re.sub(
                r"<\s*script[^>]*>.*?<\s*/\s*script\s*>",
                "",
                cleaned,
                flags=re.IGNORECASE | re.DOTALL,
            )
            cleaned = re.sub(r"<[^>]+>", "", cleaned)
            cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", cleaned)
            return cleaned
        return v


class AcademicSessionInput(BaseValidationSchema):
    name: str = Field(..., min_length=1, max_length=64)
    department: str = Field(..., min_length=1, max_length=255)
    faculty: str | None = Field(None, max_length=255)
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("name")
    def validate_session_name(cls, v):
        if not re.match(r"^\d{4}/\d{4}$", v):
            raise ValueError("Session name must look like 2024/2025")
        first, second = (int(part) for part in v.split("/"))
        if second != first + 1:
            raise ValueError("Session years must be consecutive")
        return v

    @model_validator(mode="after")
    def validate_dates(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class StudentEnrollmentInput(BaseValidationSchema):
    """Validation schema for adding a student to a session."""

    matric_no: str = Field(..., min_length=1, max_length=64)
    full_name: str = Field(..., min_length=1, max_length=255)
    program: Program
    department: str = Field(..., min_length=1, max_length=255)
    academic_session_id: int | None = Field(None, gt=0)
    project_topic: str | None = Field(None, max_length=2000)

    @field_validator("matric_no")
    def validate_matric_no(cls, v):
        if not re.match(r"^[A-Za-z0-9/\-]+$", v):
            raise ValueError("Matric number may only contain letters, digits, '/' and '-'")
        return v.upper()

    @field_validator("project_topic")
    def blank_topic_is_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class CriterionInput(BaseValidationSchema):
    stage: Stage
    title: str = Field(..., min_length=1, max_length=255)
    percentage: Decimal  # range is checked by CriterionSet (InvalidWeight)

    @field_validator("stage")
    def stage_is_scorable(cls, v):
        if v is Stage.COMPLETED:
            raise ValueError("The completed state has no rubric")
        return v


class ScoreSheetInput(BaseValidationSchema):
    """One panel member's raw scores; range checks happen in the scoring module."""

    student_id: int = Field(..., gt=0)
    stage: Stage
    panel_member: str = Field(..., min_length=1, max_length=255)
    scores: dict[str, Any] = Field(default_factory=dict)

    @field_validator("scores")
    def validate_titles(cls, value: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        seen: set[str] = set()
        for title, score in value.items():
            text = title.strip()
            if not text:
                raise ValueError("Criterion titles cannot be empty")
            key = text.casefold()
            if key in seen:
                raise ValueError(f"Duplicate criterion '{text}' in scores")
            seen.add(key)
            cleaned[text] = score
        return cleaned


class ApprovalInput(BaseValidationSchema):
    student_id: int = Field(..., gt=0)
    stage: Stage
    actor_role: ActorRole
    actor: str | None = Field(None, max_length=255)


class PanelAssignmentInput(BaseValidationSchema):
    student_id: int = Field(..., gt=0)
    role: PanelRole
    assignee: str = Field(..., min_length=1, max_length=255)


class PanelVoteInput(BaseValidationSchema):
    student_id: int = Field(..., gt=0)
    stage: Stage
    panel_member: str = Field(..., min_length=1, max_length=255)
    decision: VoteDecision
    comment: str | None = Field(None, max_length=1000)


class DefenceScheduleInput(BaseValidationSchema):
    """A defence sitting for one stage and one or more students."""

    stage: Stage
    scheduled_for: datetime
    student_ids: list[int] = Field(..., min_length=1)
    venue: str | None = Field(None, max_length=255)

    @field_validator("stage")
    def stage_can_be_defended(cls, v):
        if v is Stage.COMPLETED:
            raise ValueError("The completed state has no defence")
        return v

    @field_validator("scheduled_for")
    def naive_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @field_validator("student_ids")
    def positive_ids(cls, v: list[int]) -> list[int]:
        if any(student_id <= 0 for student_id in v):
            raise ValueError("Student IDs must be positive")
        return v


class ValidationErrorDetail(BaseModel):
    field: str
    message: str
    value: Any = None


class ValidationResponse(BaseModel):
    success: bool
    errors: list[ValidationErrorDetail] = []
    data: dict[str, Any] | None = None


def validate_input(schema_class: type[BaseModel], data: dict[str, Any]) -> ValidationResponse:
    """
    Centralized validation returning structured results instead of raising.

    Example:
        >>> result = validate_input(PanelAssignmentInput, {"student_id": 0, "role": "x"})
        >>> result.success
        False
    """
    try:
        validated = schema_class(**data)
        return ValidationResponse(success=True, data=validated.model_dump())
    except Exception as e:
        errors = []
        if hasattr(e, "errors"):
            for error in e.errors():
                errors.append(
                    ValidationErrorDetail(
                        field=".".join(str(x) for x in error["loc"]) or "general",
                        message=error["msg"],
                        value=error.get("input"),
                    )
                )
        else:
            errors.append(ValidationErrorDetail(field="general", message=str(e)))

        return ValidationResponse(success=False, errors=errors)
