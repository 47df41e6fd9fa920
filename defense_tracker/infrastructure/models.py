from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp for the timezone-less DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class AcademicSessionORM(Base):
    __tablename__ = "academic_sessions"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "2024/2025"
    department: Mapped[str] = mapped_column(String(255), nullable=False)
    faculty: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )

    __table_args__ = (UniqueConstraint("department", "name", name="uq_session_department_name"),)

    students: Mapped[list[StudentORM]] = relationship(back_populates="academic_session")


class StudentORM(Base):
    __tablename__ = "students"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    matric_no: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    program: Mapped[str] = mapped_column(String(8), nullable=False)
    department: Mapped[str] = mapped_column(String(255), nullable=False)
    project_topic: Mapped[str | None] = mapped_column(Text, nullable=True)
    current_stage: Mapped[str] = mapped_column(String(32), default="start", nullable=False)
    academic_session_id: Mapped[int | None] = mapped_column(
        ForeignKey("academic_sessions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (CheckConstraint("program IN ('msc', 'phd')", name="ck_student_program"),)
    # Every UPDATE checks the version it read; a concurrent writer gets StaleDataError.
    __mapper_args__ = {"version_id_col": version}

    academic_session: Mapped[AcademicSessionORM | None] = relationship(back_populates="students")
    approvals: Mapped[list[StageApprovalORM]] = relationship(
        back_populates="student", cascade="all, delete-orphan"
    )
    panel: Mapped[list[PanelAssignmentORM]] = relationship(
        back_populates="student", cascade="all, delete-orphan"
    )
    score_sheets: Mapped[list[ScoreSheetORM]] = relationship(
        back_populates="student", cascade="all, delete-orphan"
    )


class StageApprovalORM(Base):
    __tablename__ = "stage_approvals"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stage: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    composite_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approved_by_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    __table_args__ = (
        UniqueConstraint("student_id", "stage", name="uq_approval_student_stage"),
        CheckConstraint("status IN ('pending', 'approved')", name="ck_approval_status"),
        CheckConstraint(
            "composite_score IS NULL OR (composite_score BETWEEN 0 AND 100)",
            name="ck_approval_composite",
        ),
    )

    student: Mapped[StudentORM] = relationship(back_populates="approvals")


class PanelAssignmentORM(Base):
    __tablename__ = "panel_assignments"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    assignee: Mapped[str] = mapped_column(String(255), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )

    __table_args__ = (UniqueConstraint("student_id", "role", name="uq_panel_student_role"),)

    student: Mapped[StudentORM] = relationship(back_populates="panel")


class RubricORM(Base):
    __tablename__ = "rubrics"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    stage: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )

    criteria: Mapped[list[RubricCriterionORM]] = relationship(
        back_populates="rubric",
        cascade="all, delete-orphan",
        order_by="RubricCriterionORM.position",
    )


class RubricCriterionORM(Base):
    __tablename__ = "rubric_criteria"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    rubric_id: Mapped[int] = mapped_column(
        ForeignKey("rubrics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("rubric_id", "title", name="uq_criterion_rubric_title"),
        CheckConstraint("percentage > 0 AND percentage <= 100", name="ck_criterion_percentage"),
    )

    rubric: Mapped[RubricORM] = relationship(back_populates="criteria")


class ScoreSheetORM(Base):
    __tablename__ = "score_sheets"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stage: Mapped[str] = mapped_column(String(32), nullable=False)
    panel_member: Mapped[str] = mapped_column(String(255), nullable=False)
    scores: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)  # title -> int | None
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("student_id", "stage", "panel_member", name="uq_sheet_student_stage_member"),
    )

    student: Mapped[StudentORM] = relationship(back_populates="score_sheets")


class PanelVoteORM(Base):
    __tablename__ = "panel_votes"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stage: Mapped[str] = mapped_column(String(32), nullable=False)
    panel_member: Mapped[str] = mapped_column(String(255), nullable=False)
    panel_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    decision: Mapped[str] = mapped_column(String(16), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "decision IN ('approve', 'revise', 'reject', 'comment')", name="ck_vote_decision"
        ),
    )


defence_students = Table(
    "defence_students",
    Base.metadata,
    Column("defence_id", ForeignKey("defences.id", ondelete="CASCADE"), primary_key=True),
    Column("student_id", ForeignKey("students.id", ondelete="CASCADE"), primary_key=True),
)


class DefenceORM(Base):
    __tablename__ = "defences"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    stage: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    venue: Mapped[str | None] = mapped_column(String(255), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "ended_at IS NULL OR started_at IS NOT NULL", name="ck_defence_started_before_end"
        ),
    )
    __mapper_args__ = {"version_id_col": version}

    students: Mapped[list[StudentORM]] = relationship(
        secondary=defence_students, order_by="StudentORM.id"
    )


class NotificationORM(Base):
    __tablename__ = "notifications"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )


class ActivityLogORM(Base):
    __tablename__ = "activity_logs"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    actor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )
