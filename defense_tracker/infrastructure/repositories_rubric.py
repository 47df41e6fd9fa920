# defense_tracker/infrastructure/repositories_rubric.py
from __future__ import annotations

import builtins
from decimal import Decimal

from sqlalchemy.orm import Session, selectinload

from .logging import log_database_operation as log_op
from .models import RubricCriterionORM, RubricORM, ScoreSheetORM
from .repositories_base import BaseRepository as GenericBaseRepository


class RubricRepo(GenericBaseRepository[RubricORM]):
    """Per-stage rubric drafts and their criteria rows."""

    model = RubricORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("rubric.get_for_stage")
    def get_for_stage(self, stage: str) -> RubricORM | None:
        return (
            self.s.query(RubricORM)
            .options(selectinload(RubricORM.criteria))
            .filter(RubricORM.stage == stage)
            .one_or_none()
        )

    @log_op("rubric.get_or_create")
    def get_or_create(self, stage: str) -> RubricORM:
        rubric = self.get_for_stage(stage)
        if rubric is None:
            rubric = self.create(stage=stage, published=False)
        return rubric

    @log_op("rubric.replace_criteria")
    def replace_criteria(
        self, rubric: RubricORM, criteria: builtins.list[tuple[str, Decimal]]
    ) -> RubricORM:
        """Make the stored rows match ``criteria`` in order."""
        rubric.criteria.clear()
        self.s.flush()
        for position, (title, percentage) in enumerate(criteria):
            rubric.criteria.append(
                RubricCriterionORM(title=title, percentage=percentage, position=position)
            )
        self.s.flush()
        return rubric


class ScoreSheetRepo(GenericBaseRepository[ScoreSheetORM]):
    model = ScoreSheetORM

    @log_op("score_sheet.list_for_stage")
    def list_for_stage(self, student_id: int, stage: str) -> builtins.list[ScoreSheetORM]:
        return self.list(
            ScoreSheetORM.student_id == student_id,
            ScoreSheetORM.stage == stage,
            order_by=[ScoreSheetORM.panel_member],
        )

    @log_op("score_sheet.upsert")
    def upsert(
        self, student_id: int, stage: str, panel_member: str, scores: dict[str, int | None]
    ) -> ScoreSheetORM:
        sheet = (
            self.s.query(ScoreSheetORM)
            .filter_by(student_id=student_id, stage=stage, panel_member=panel_member)
            .one_or_none()
        )
        if sheet is None:
            sheet = ScoreSheetORM(student_id=student_id, stage=stage, panel_member=panel_member)
            self.s.add(sheet)
        sheet.scores = dict(scores)
        self.s.flush()
        return sheet
