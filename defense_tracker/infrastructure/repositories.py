"""
Repository re-exports so callers can write
``from defense_tracker.infrastructure.repositories import StudentRepo``.
"""

from __future__ import annotations

from .repositories_defence import DefenceRepo
from .repositories_notification import ActivityLogRepo, NotificationRepo
from .repositories_panel import PanelRepo, PanelVoteRepo
from .repositories_rubric import RubricRepo, ScoreSheetRepo
from .repositories_student import AcademicSessionRepo, StudentRepo

__all__ = [
    "AcademicSessionRepo",
    "ActivityLogRepo",
    "DefenceRepo",
    "NotificationRepo",
    "PanelRepo",
    "PanelVoteRepo",
    "RubricRepo",
    "ScoreSheetRepo",
    "StudentRepo",
]
