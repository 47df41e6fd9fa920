"""
Weighted scoring criteria for a defense stage.

A :class:`CriterionSet` is the editable draft a PG coordinator builds; once its
percentages add up to exactly 100 it can be published into an immutable
:class:`~defense_tracker.domain.models.Rubric` for one stage.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from decimal import Decimal, InvalidOperation
from numbers import Real

from ..infrastructure.exceptions import (
    DuplicateCriterionError,
    InvalidWeightError,
    RubricLockedError,
    UnbalancedWeightsError,
    ValidationError,
)
from .models import Criterion, Rubric, Stage

HUNDRED = Decimal(100)
# rubric_criteria.percentage is NUMERIC(5, 2)
WEIGHT_STEP = Decimal("0.01")


def to_percentage(value: object, title: str = "") -> Decimal:
    """Convert ``value`` to an exact Decimal weight in (0, 100] with at most two decimal places."""
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        raise InvalidWeightError(title, value)
    try:
        pct = Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidWeightError(title, value) from exc
    if not pct.is_finite() or not (0 < pct <= HUNDRED):
        raise InvalidWeightError(title, value)
    if pct != pct.quantize(WEIGHT_STEP):
        raise InvalidWeightError(title, value)
    return pct


class CriterionSet:
    """Ordered draft of scoring criteria; titles are unique ignoring case."""

    def __init__(self, criteria: Iterable[Criterion] = (), stage: Stage | None = None):
        self.stage = stage
        self._criteria: list[Criterion] = []
        self._published = False
        for criterion in criteria:
            self.add_criterion(criterion.title, criterion.percentage)

    def __iter__(self) -> Iterator[Criterion]:
        return iter(self._criteria)

    def __len__(self) -> int:
        return len(self._criteria)

    def __contains__(self, title: object) -> bool:
        return isinstance(title, str) and self._index_of(title) is not None

    @property
    def criteria(self) -> tuple[Criterion, ...]:
        return tuple(self._criteria)

    @property
    def published(self) -> bool:
        return self._published

    @property
    def total_percentage(self) -> Decimal:
        return sum((c.percentage for c in self._criteria), Decimal(0))

    def _stage_value(self) -> str | None:
        return self.stage.value if self.stage is not None else None

    def _index_of(self, title: str) -> int | None:
        key = title.strip().casefold()
        for i, criterion in enumerate(self._criteria):
            if criterion.title.casefold() == key:
                return i
        return None

    def _ensure_editable(self) -> None:
        if self._published:
            raise RubricLockedError(self._stage_value())

    def add_criterion(self, title: str, percentage: object) -> Criterion:
        self._ensure_editable()
        cleaned = (title or "").strip()
        if not cleaned:
            raise ValidationError("title", "Criterion title cannot be empty", title)
        if self._index_of(cleaned) is not None:
            raise DuplicateCriterionError(cleaned, self._stage_value())
        criterion = Criterion(title=cleaned, percentage=to_percentage(percentage, cleaned))
        self._criteria.append(criterion)
        return criterion

    def remove_criterion(self, title: str) -> Criterion | None:
        """Remove ``title`` if present; returns the removed criterion or None."""
        self._ensure_editable()
        index = self._index_of(title or "")
        if index is None:
            return None
        return self._criteria.pop(index)

    def is_publishable(self) -> bool:
        return bool(self._criteria) and self.total_percentage == HUNDRED

    def publish(self, stage: Stage | None = None) -> Rubric:
        """
        Freeze the set into a rubric for ``stage``.

        Raises:
            UnbalancedWeightsError: if the set is empty or does not total 100
            RubricLockedError: if the set was already published
        """
        self._ensure_editable()
        target = stage or self.stage
        if target is None:
            raise ValidationError("stage", "A stage is required to publish a rubric")
        if not self.is_publishable():
            raise UnbalancedWeightsError(self.total_percentage, target.value)
        self.stage = target
        self._published = True
        return Rubric(stage=target, criteria=tuple(self._criteria))
