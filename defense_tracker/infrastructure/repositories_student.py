# defense_tracker/infrastructure/repositories_student.py
from __future__ import annotations

import builtins
from typing import Any

from sqlalchemy.orm import Session, selectinload

from .exceptions import StudentNotFoundError
from .logging import log_database_operation as log_op
from .models import AcademicSessionORM, StageApprovalORM, StudentORM, utcnow
from .repositories_base import BaseRepository as GenericBaseRepository


class AcademicSessionRepo(GenericBaseRepository[AcademicSessionORM]):
    model = AcademicSessionORM

    @log_op("academic_session.active_for_department")
    def active_for_department(self, department: str) -> builtins.list[AcademicSessionORM]:
        return self.list(
            AcademicSessionORM.department == department,
            AcademicSessionORM.is_active.is_(True),
            order_by=[AcademicSessionORM.name.desc()],
        )


class StudentRepo(GenericBaseRepository[StudentORM]):
    """
    Repository for students and their per-stage approval rows.

    Example:
        >>> repo = StudentRepo(session)
        >>> student = repo.get_required(3)
        >>> repo.upsert_approval(student, "proposal", status="approved")
    """

    model = StudentORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("student.get_required")
    def get_required(self, student_id: Any) -> StudentORM:
        student = (
            self.s.query(StudentORM)
            .options(selectinload(StudentORM.approvals), selectinload(StudentORM.panel))
            .filter(StudentORM.id == student_id)
            .one_or_none()
        )
        if student is None:
            raise StudentNotFoundError(student_id)
        return student

    @log_op("student.get_by_matric_no")
    def get_by_matric_no(self, matric_no: str) -> StudentORM | None:
        return self.s.query(StudentORM).filter(StudentORM.matric_no == matric_no).one_or_none()

    @log_op("student.list_for_program")
    def list_for_program(self, program: str | None = None) -> builtins.list[StudentORM]:
        filters = [StudentORM.program == program] if program else []
        return self.list(*filters, order_by=[StudentORM.matric_no])

    @log_op("student.create")
    def create(self, **fields: Any) -> StudentORM:
        return super().create(**fields)

    def touch(self, student: StudentORM) -> None:
        """Force an UPDATE of the student row so the version check runs."""
        student.updated_at = utcnow()

    @log_op("student.upsert_approval")
    def upsert_approval(self, student: StudentORM, stage: str, **fields: Any) -> StageApprovalORM:
        approval = next((a for a in student.approvals if a.stage == stage), None)
        if approval is None:
            approval = StageApprovalORM(stage=stage)
            student.approvals.append(approval)
        for key, value in fields.items():
            setattr(approval, key, value)
        self.s.flush()
        return approval
