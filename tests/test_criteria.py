from decimal import Decimal

import pytest

from defense_tracker.domain.criteria import CriterionSet, to_percentage
from defense_tracker.domain.models import Criterion, Stage
from defense_tracker.infrastructure.exceptions import (
    DuplicateCriterionError,
    InvalidWeightError,
    RubricLockedError,
    UnbalancedWeightsError,
    ValidationError,
)


def proposal_set():
    cs = CriterionSet(stage=Stage.PROPOSAL)
    cs.add_criterion("Presentation", 20)
    cs.add_criterion("Content", 40)
    cs.add_criterion("Defense Handling", 40)
    return cs


def test_add_criterion_appends_in_order():
    cs = proposal_set()
    assert [c.title for c in cs] == ["Presentation", "Content", "Defense Handling"]
    assert cs.criteria[0] == Criterion("Presentation", Decimal(20))
    assert cs.total_percentage == Decimal(100)


def test_duplicate_title_is_case_insensitive():
    cs = proposal_set()
    with pytest.raises(DuplicateCriterionError) as exc:
        cs.add_criterion("  content ", 10)
    assert exc.value.code == "DuplicateCriterion"
    assert len(cs) == 3


@pytest.mark.parametrize(
    "weight", [0, -5, 100.5, 101, True, "40", None, float("nan"), 12.345, Decimal("0.001")]
)
def test_invalid_weights_rejected(weight):
    cs = CriterionSet()
    with pytest.raises(InvalidWeightError):
        cs.add_criterion("Clarity", weight)
    assert len(cs) == 0


def test_full_weight_and_fractional_weight_accepted():
    assert to_percentage(100) == Decimal(100)
    assert to_percentage(Decimal("12.5")) == Decimal("12.5")
    assert to_percentage(0.1) == Decimal("0.1")
    assert to_percentage(Decimal("33.330")) == Decimal("33.33")


def test_blank_title_rejected():
    with pytest.raises(ValidationError):
        CriterionSet().add_criterion("   ", 50)


def test_remove_missing_criterion_is_a_noop():
    cs = proposal_set()
    assert cs.remove_criterion("Methodology") is None
    assert len(cs) == 3


def test_remove_criterion_ignores_case():
    cs = proposal_set()
    removed = cs.remove_criterion("PRESENTATION")
    assert removed is not None and removed.title == "Presentation"
    assert "presentation" not in cs
    assert not cs.is_publishable()


@pytest.mark.parametrize(
    "weights, publishable",
    [
        ([], False),
        ([100], True),
        ([50, 50], True),
        ([20, 40, 40], True),
        ([20, 40, 39], False),
        ([60, 30], False),
        ([Decimal("33.33"), Decimal("33.33"), Decimal("33.34")], True),
        ([Decimal("33.33"), Decimal("33.33"), Decimal("33.33")], False),
    ],
)
def test_publishable_iff_non_empty_and_totals_100(weights, publishable):
    cs = CriterionSet()
    for i, weight in enumerate(weights):
        cs.add_criterion(f"Criterion {i}", weight)
    assert cs.is_publishable() is publishable


def test_publish_unbalanced_leaves_set_editable():
    cs = CriterionSet()
    cs.add_criterion("Clarity", 30)
    with pytest.raises(UnbalancedWeightsError) as exc:
        cs.publish(Stage.PROPOSAL)
    assert exc.value.code == "UnbalancedWeights"
    assert cs.published is False
    assert cs.stage is None
    cs.add_criterion("Originality", 70)
    assert cs.is_publishable()


def test_publish_empty_set_fails():
    with pytest.raises(UnbalancedWeightsError):
        CriterionSet(stage=Stage.PROPOSAL).publish()


def test_publish_binds_stage_and_locks_set():
    cs = proposal_set()
    rubric = cs.publish()
    assert rubric.stage is Stage.PROPOSAL
    assert rubric.titles == ("Presentation", "Content", "Defense Handling")
    assert rubric.find("defense handling").percentage == Decimal(40)
    assert rubric.find("Methodology") is None

    with pytest.raises(RubricLockedError):
        cs.add_criterion("Extra", 1)
    with pytest.raises(RubricLockedError):
        cs.remove_criterion("Content")
    with pytest.raises(RubricLockedError):
        cs.publish()


def test_publish_needs_a_stage():
    cs = CriterionSet()
    cs.add_criterion("Everything", 100)
    with pytest.raises(ValidationError):
        cs.publish()
