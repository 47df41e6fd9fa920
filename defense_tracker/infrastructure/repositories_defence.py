# defense_tracker/infrastructure/repositories_defence.py
from __future__ import annotations

import builtins
from typing import Any

from sqlalchemy.orm import selectinload

from .exceptions import DefenceNotFoundError
from .logging import log_database_operation as log_op
from .models import DefenceORM, StudentORM, defence_students
from .repositories_base import BaseRepository as GenericBaseRepository


class DefenceRepo(GenericBaseRepository[DefenceORM]):
    """Defence sittings and the students scheduled into them."""

    model = DefenceORM

    @log_op("defence.get_required")
    def get_required(self, defence_id: Any) -> DefenceORM:
        defence = (
            self.s.query(DefenceORM)
            .options(selectinload(DefenceORM.students))
            .filter(DefenceORM.id == defence_id)
            .one_or_none()
        )
        if defence is None:
            raise DefenceNotFoundError(defence_id)
        return defence

    @log_op("defence.create")
    def create(self, students: builtins.list[StudentORM], **fields: Any) -> DefenceORM:
        return super().create(students=list(students), **fields)

    @log_op("defence.list_for_stage")
    def list_for_stage(self, stage: str | None = None) -> builtins.list[DefenceORM]:
        filters = [DefenceORM.stage == stage] if stage else []
        return self.list(*filters, order_by=[DefenceORM.scheduled_for, DefenceORM.id])

    @log_op("defence.running_for_student")
    def running_for_student(self, student_id: int, stage: str) -> builtins.list[DefenceORM]:
        return (
            self.s.query(DefenceORM)
            .join(defence_students, defence_students.c.defence_id == DefenceORM.id)
            .filter(
                defence_students.c.student_id == student_id,
                DefenceORM.stage == stage,
                DefenceORM.started_at.is_not(None),
                DefenceORM.ended_at.is_(None),
            )
            .all()
        )
