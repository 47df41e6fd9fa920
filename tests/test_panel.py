import pytest

from defense_tracker.domain.models import PanelRole, Program, Stage, VoteDecision
from defense_tracker.domain.panel import assign_panel_role, cast_vote, list_panel
from defense_tracker.domain.progression import new_record
from defense_tracker.infrastructure.exceptions import AlreadyCompletedError, ValidationError


def test_assign_returns_previous_holder():
    record = new_record(1, Program.MSC)
    record, previous = assign_panel_role(record, PanelRole.MAJOR_SUPERVISOR, "Dr. Bello")
    assert previous is None
    record, previous = assign_panel_role(record, PanelRole.MAJOR_SUPERVISOR, "Prof. Eze")
    assert previous == "Dr. Bello"
    assert list_panel(record) == {PanelRole.MAJOR_SUPERVISOR: "Prof. Eze"}


def test_one_assignee_per_role():
    record = new_record(1, Program.PHD)
    for name in ["A", "B", "C"]:
        record, _ = assign_panel_role(record, PanelRole.EXTERNAL_EXAMINER, name)
    record, _ = assign_panel_role(record, PanelRole.INTERNAL_EXAMINER, "D")
    assert list_panel(record) == {
        PanelRole.EXTERNAL_EXAMINER: "C",
        PanelRole.INTERNAL_EXAMINER: "D",
    }


def test_list_panel_is_a_snapshot():
    record, _ = assign_panel_role(new_record(1, Program.MSC), "college_rep", "Dr. Musa")
    snapshot = list_panel(record)
    snapshot[PanelRole.COLLEGE_REP] = "someone else"
    assert list_panel(record)[PanelRole.COLLEGE_REP] == "Dr. Musa"


def test_assign_does_not_modify_input_record():
    original = new_record(1, Program.MSC)
    assign_panel_role(original, PanelRole.FACULTY_REP, "Dr. Ade")
    assert list_panel(original) == {}


def test_blank_assignee_rejected():
    with pytest.raises(ValidationError):
        assign_panel_role(new_record(1, Program.MSC), PanelRole.FACULTY_REP, "  ")


def test_unknown_role_rejected():
    with pytest.raises(ValueError):
        assign_panel_role(new_record(1, Program.MSC), "chancellor", "Dr. Ade")


def test_vote_picks_up_panel_role():
    record, _ = assign_panel_role(new_record(3, Program.MSC), PanelRole.INTERNAL_EXAMINER, "Dr. Okafor")
    vote = cast_vote(record, Stage.PROPOSAL, "Dr. Okafor", VoteDecision.REVISE, "  Tighten chapter 2 ")
    assert vote.panel_role is PanelRole.INTERNAL_EXAMINER
    assert vote.comment == "Tighten chapter 2"
    assert vote.student_id == 3


def test_vote_from_non_panel_member_has_no_role():
    vote = cast_vote(new_record(3, Program.MSC), Stage.PROPOSAL, "Visitor", "comment", "   ")
    assert vote.panel_role is None
    assert vote.comment is None
    assert vote.decision is VoteDecision.COMMENT


def completed_record():
    record = new_record(4, Program.MSC)
    record.current_stage = Stage.COMPLETED
    return record


def test_completed_panel_cannot_be_changed():
    record = completed_record()
    with pytest.raises(AlreadyCompletedError):
        assign_panel_role(record, PanelRole.EXTERNAL_EXAMINER, "Prof. Late")
    assert list_panel(record) == {}


def test_completed_record_takes_no_votes():
    with pytest.raises(AlreadyCompletedError):
        cast_vote(completed_record(), Stage.EXTERNAL_DEFENSE, "Prof. Late", VoteDecision.REJECT)


@pytest.mark.parametrize("stage", [Stage.SECOND_SEMINAR, Stage.PROPOSAL_DEFENSE, Stage.COMPLETED])
def test_vote_stage_must_belong_to_programme(stage):
    with pytest.raises(ValidationError):
        cast_vote(new_record(3, Program.MSC), stage, "Dr. Okafor", VoteDecision.REJECT)


def test_phd_stage_accepts_votes_for_phd_student():
    vote = cast_vote(new_record(5, Program.PHD), Stage.SECOND_SEMINAR, "Dr. Okafor", VoteDecision.APPROVE)
    assert vote.stage is Stage.SECOND_SEMINAR
