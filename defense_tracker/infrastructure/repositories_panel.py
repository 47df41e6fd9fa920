# defense_tracker/infrastructure/repositories_panel.py
from __future__ import annotations

import builtins

from .logging import log_database_operation as log_op
from .models import PanelAssignmentORM, PanelVoteORM, StudentORM
from .repositories_base import BaseRepository as GenericBaseRepository


class PanelRepo(GenericBaseRepository[PanelAssignmentORM]):
    """Panel assignments, one row per (student, role)."""

    model = PanelAssignmentORM

    @log_op("panel.assign")
    def assign(self, student: StudentORM, role: str, assignee: str) -> str | None:
        """Upsert the assignee for ``role``; returns the previous holder."""
        assignment = next((a for a in student.panel if a.role == role), None)
        if assignment is None:
            student.panel.append(PanelAssignmentORM(role=role, assignee=assignee))
            self.s.flush()
            return None
        previous = assignment.assignee
        assignment.assignee = assignee
        self.s.flush()
        return previous

    @log_op("panel.students_for_assignee")
    def students_for_assignee(self, assignee: str) -> builtins.list[PanelAssignmentORM]:
        return self.list(
            PanelAssignmentORM.assignee == assignee,
            order_by=[PanelAssignmentORM.student_id, PanelAssignmentORM.role],
        )


class PanelVoteRepo(GenericBaseRepository[PanelVoteORM]):
    model = PanelVoteORM

    @log_op("panel_vote.list_for_stage")
    def list_for_stage(self, student_id: int, stage: str) -> builtins.list[PanelVoteORM]:
        return self.list(
            PanelVoteORM.student_id == student_id,
            PanelVoteORM.stage == stage,
            order_by=[PanelVoteORM.created_at, PanelVoteORM.id],
        )
