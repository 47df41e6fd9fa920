from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from numbers import Integral

from ..infrastructure.exceptions import ScoreOutOfRangeError
from .models import Criterion

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100

ScoreEntries = Mapping[str, int | None]


def validate_score(value: object, criterion: str = "") -> int | None:
    """
    Check a single raw score at the entry boundary.

    ``None`` means unset. Anything else must be an integer in 0..100;
    booleans and floats are rejected, including integral ones such as ``85.0``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ScoreOutOfRangeError(criterion, value)
    if isinstance(value, Integral):
        score = int(value)
    else:
        raise ScoreOutOfRangeError(criterion, value)
    if not (MIN_SCORE <= score <= MAX_SCORE):
        raise ScoreOutOfRangeError(criterion, value)
    return score


def validate_score_entries(entries: Mapping[str, object]) -> dict[str, int | None]:
    return {title: validate_score(value, title) for title, value in entries.items()}


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _weighted_sum(criteria: tuple[Criterion, ...], entries: ScoreEntries) -> Decimal:
    by_title = {title.strip().casefold(): score for title, score in entries.items()}
    known = {c.title.casefold() for c in criteria}
    unknown = sorted(t for t in entries if t.strip().casefold() not in known)
    if unknown:
        logger.warning("Ignoring scores for criteria outside the rubric: %s", ", ".join(unknown))

    total = Decimal(0)
    for criterion in criteria:
        score = by_title.get(criterion.title.casefold())
        if score is None:
            continue
        total += Decimal(int(score)) * criterion.percentage
    return total / 100


def compute_composite(criteria: Iterable[Criterion], entries: ScoreEntries) -> int:
    """
    Weighted composite of one score sheet, rounded half-up to an integer.

    Criteria missing from ``entries`` (or set to None) contribute 0 and titles
    not in ``criteria`` are ignored. An empty criterion list scores 0.

    Example:
        >>> crit = [Criterion("Clarity", Decimal(30)), Criterion("Originality", Decimal(70))]
        >>> compute_composite(crit, {"Clarity": 85, "Originality": 90})
        89
    """
    return round_half_up(_weighted_sum(tuple(criteria), entries))


def aggregate_panel_scores(criteria: Iterable[Criterion], sheets: Iterable[ScoreEntries]) -> int:
    """
    Stage composite across several panel members' sheets.

    The unrounded weighted sums are averaged and the mean is rounded once, so a
    single sheet gives the same result as :func:`compute_composite`.
    """
    criteria = tuple(criteria)
    sums = [_weighted_sum(criteria, sheet) for sheet in sheets]
    if not sums:
        return 0
    return round_half_up(sum(sums, Decimal(0)) / len(sums))
