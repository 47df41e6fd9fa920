"""
Service-level tests against an in-memory SQLite database.

These cover the persisted workflow: rubric drafts, score sheets, approvals,
advancement, panel assignment, notifications and the optimistic version check.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine

from defense_tracker.domain.models import (
    ActorRole,
    ApprovalStatus,
    Defence,
    DefenceStatus,
    PanelRole,
    Program,
    Stage,
    VoteDecision,
)
from defense_tracker.domain.services import DefenceService, ProgressionService, RubricService
from defense_tracker.infrastructure.config import reset_settings
from defense_tracker.infrastructure.db import create_session_factory, initialise_database
from defense_tracker.infrastructure.exceptions import (
    AlreadyCompletedError,
    ApprovalNotAuthorizedError,
    ConcurrencyConflictError,
    DefenceNotFoundError,
    DefenceNotRunningError,
    DefenceStateError,
    DuplicateCriterionError,
    IntegrityError,
    InvalidWeightError,
    NoRubricPublishedError,
    RubricLockedError,
    ScoreOutOfRangeError,
    ScoringClosedError,
    StageMismatchError,
    StageNotApprovedError,
    StudentNotFoundError,
    UnbalancedWeightsError,
    ValidationError,
)
from defense_tracker.infrastructure.models import StageApprovalORM, StudentORM
from defense_tracker.infrastructure.notifications import Notification, RecordingNotifier
from defense_tracker.infrastructure.repositories import ActivityLogRepo, NotificationRepo

APPROVERS = {
    Stage.START: ActorRole.MAJOR_SUPERVISOR,
    Stage.PROPOSAL: ActorRole.HOD,
    Stage.INTERNAL_DEFENSE: ActorRole.DEAN,
    Stage.PROPOSAL_DEFENSE: ActorRole.HOD,
    Stage.SECOND_SEMINAR: ActorRole.HOD,
    Stage.THIRD_SEMINAR: ActorRole.DEAN,
    Stage.EXTERNAL_DEFENSE: ActorRole.PROVOST,
}


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    def notify(self, notification: Notification) -> None:
        self.attempts += 1
        raise RuntimeError("mail server down")


@pytest.fixture
def session():
    engine = create_engine("sqlite:///:memory:", future=True)
    initialise_database(engine)
    SessionLocal = create_session_factory(engine)
    s = SessionLocal()
    yield s
    s.close()
    engine.dispose()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(session, notifier):
    return ProgressionService(session, notifier=notifier)


def enroll(service: ProgressionService, matric_no="PG/2024/001", program=Program.MSC):
    return service.enroll_student(
        matric_no=matric_no, full_name="Ada Obi", program=program, department="Physics"
    )


def publish_proposal_rubric(session):
    rubrics = RubricService(session)
    rubrics.add_criterion(Stage.PROPOSAL, "Clarity", 30)
    rubrics.add_criterion(Stage.PROPOSAL, "Originality", 70)
    return rubrics.publish(Stage.PROPOSAL)


def move_to_proposal(service: ProgressionService, student_id: int) -> None:
    service.approve(student_id, Stage.START, ActorRole.MAJOR_SUPERVISOR)
    service.advance(student_id)


def open_defence(session, *student_ids: int, stage=Stage.PROPOSAL) -> Defence:
    defences = DefenceService(session, notifier=RecordingNotifier())
    defence = defences.schedule(stage, datetime(2026, 11, 2, 10), list(student_ids))
    return defences.start(defence.defence_id)


class TestEnrollment:
    def test_new_student_starts_at_start(self, service):
        record = enroll(service)
        assert record.current_stage is Stage.START
        assert record.program is Program.MSC
        assert service.get_record(record.student_id).approvals == {}

    def test_duplicate_matric_number_rejected(self, service):
        enroll(service)
        with pytest.raises(IntegrityError):
            enroll(service)

    @pytest.mark.parametrize(
        "call",
        [
            lambda svc: svc.get_record(999),
            lambda svc: svc.approve(999, Stage.START, ActorRole.MAJOR_SUPERVISOR),
            lambda svc: svc.advance(999),
            lambda svc: svc.assign_panel_role(999, PanelRole.MAJOR_SUPERVISOR, "Dr. Bello"),
            lambda svc: svc.list_panel(999),
            lambda svc: svc.composite(999, Stage.PROPOSAL),
        ],
    )
    def test_unknown_student(self, service, call):
        with pytest.raises(StudentNotFoundError) as exc:
            call(service)
        assert exc.value.code == "UnknownStudent"


class TestRubricService:
    def test_draft_round_trips_through_database(self, session):
        rubrics = RubricService(session)
        rubrics.add_criterion(Stage.PROPOSAL, "Clarity", 30)
        rubrics.add_criterion(Stage.PROPOSAL, "Originality", Decimal("70"))

        draft = RubricService(session).get_draft(Stage.PROPOSAL)
        assert [c.title for c in draft] == ["Clarity", "Originality"]
        assert draft.published is False
        assert rubrics.is_publishable(Stage.PROPOSAL)

    def test_fractional_weights_survive_reload(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'weights.db'}", future=True)
        initialise_database(engine)
        SessionLocal = create_session_factory(engine)
        try:
            with SessionLocal() as writer:
                rubrics = RubricService(writer)
                rubrics.add_criterion(Stage.PROPOSAL, "Clarity", 12.35)
                rubrics.add_criterion(Stage.PROPOSAL, "Originality", Decimal("87.65"))
                with pytest.raises(InvalidWeightError):
                    rubrics.add_criterion(Stage.PROPOSAL, "Style", 12.345)
                writer.commit()

            with SessionLocal() as reader:
                draft = RubricService(reader).get_draft(Stage.PROPOSAL)
                assert [(c.title, c.percentage) for c in draft] == [
                    ("Clarity", Decimal("12.35")),
                    ("Originality", Decimal("87.65")),
                ]
                assert draft.total_percentage == Decimal(100)
                assert RubricService(reader).publish(Stage.PROPOSAL).stage is Stage.PROPOSAL
        finally:
            engine.dispose()

    def test_duplicate_and_remove(self, session):
        rubrics = RubricService(session)
        rubrics.add_criterion(Stage.PROPOSAL, "Clarity", 30)
        with pytest.raises(DuplicateCriterionError):
            rubrics.add_criterion(Stage.PROPOSAL, "CLARITY", 10)
        assert rubrics.remove_criterion(Stage.PROPOSAL, "Missing") is None
        assert rubrics.remove_criterion(Stage.PROPOSAL, "clarity").title == "Clarity"
        assert len(rubrics.get_draft(Stage.PROPOSAL)) == 0

    def test_publish_requires_balanced_weights(self, session):
        rubrics = RubricService(session)
        rubrics.add_criterion(Stage.PROPOSAL, "Clarity", 30)
        with pytest.raises(UnbalancedWeightsError):
            rubrics.publish(Stage.PROPOSAL)
        assert rubrics.get_published(Stage.PROPOSAL) is None

    def test_published_rubric_is_locked(self, session):
        rubric = publish_proposal_rubric(session)
        assert rubric.titles == ("Clarity", "Originality")

        rubrics = RubricService(session)
        stored = rubrics.get_published(Stage.PROPOSAL)
        assert stored.find("originality").percentage == Decimal(70)
        with pytest.raises(RubricLockedError):
            rubrics.add_criterion(Stage.PROPOSAL, "Extra", 1)
        with pytest.raises(RubricLockedError):
            rubrics.publish(Stage.PROPOSAL)

    def test_rubrics_are_per_stage(self, session):
        publish_proposal_rubric(session)
        assert RubricService(session).get_published(Stage.INTERNAL_DEFENSE) is None


class TestScoring:
    def test_scores_require_current_stage(self, service, session):
        student = enroll(service)
        publish_proposal_rubric(session)
        with pytest.raises(StageMismatchError):
            service.submit_scores(student.student_id, Stage.PROPOSAL, "Dr. Bello", {"Clarity": 80})

    def test_scores_require_published_rubric(self, service):
        student = enroll(service)
        move_to_proposal(service, student.student_id)
        with pytest.raises(NoRubricPublishedError):
            service.submit_scores(student.student_id, Stage.PROPOSAL, "Dr. Bello", {"Clarity": 80})

    def test_unknown_title_and_bad_score_rejected(self, service, session):
        student = enroll(service)
        move_to_proposal(service, student.student_id)
        publish_proposal_rubric(session)
        with pytest.raises(ValidationError):
            service.submit_scores(student.student_id, Stage.PROPOSAL, "Dr. Bello", {"Charisma": 80})
        with pytest.raises(ScoreOutOfRangeError):
            service.submit_scores(student.student_id, Stage.PROPOSAL, "Dr. Bello", {"Clarity": 101})
        assert service.composite(student.student_id, Stage.PROPOSAL) == 0

    def test_titles_are_stored_as_published(self, service, session):
        student = enroll(service)
        move_to_proposal(service, student.student_id)
        publish_proposal_rubric(session)
        open_defence(session, student.student_id)
        stored = service.submit_scores(
            student.student_id, Stage.PROPOSAL, "Dr. Bello", {"clarity": 85, "ORIGINALITY": 90}
        )
        assert stored == {"Clarity": 85, "Originality": 90}

    def test_panel_sheets_are_averaged_and_resubmission_replaces(self, service, session):
        student = enroll(service)
        move_to_proposal(service, student.student_id)
        publish_proposal_rubric(session)
        sid = student.student_id
        open_defence(session, sid)

        service.submit_scores(sid, Stage.PROPOSAL, "Dr. Bello", {"Clarity": 85, "Originality": 90})
        service.submit_scores(sid, Stage.PROPOSAL, "Prof. Eze", {"Clarity": 80, "Originality": 80})
        assert service.composite(sid, Stage.PROPOSAL) == 84

        service.submit_scores(sid, Stage.PROPOSAL, "Prof. Eze", {"Clarity": 90, "Originality": 90})
        assert service.composite(sid, Stage.PROPOSAL) == 89

    def test_scoring_closes_after_approval(self, service, session):
        student = enroll(service)
        move_to_proposal(service, student.student_id)
        publish_proposal_rubric(session)
        service.approve(student.student_id, Stage.PROPOSAL, ActorRole.DEAN)
        with pytest.raises(ScoringClosedError):
            service.submit_scores(student.student_id, Stage.PROPOSAL, "Dr. Bello", {"Clarity": 80})

    def test_composite_without_rubric_is_zero(self, service):
        student = enroll(service)
        assert service.composite(student.student_id, Stage.START) == 0


class TestWorkflow:
    def test_msc_end_to_end(self, service, session):
        student = enroll(service)
        sid = student.student_id

        start = service.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR, actor="Dr. Bello")
        assert start.composite == 0
        assert service.advance(sid).current_stage is Stage.PROPOSAL

        publish_proposal_rubric(session)
        open_defence(session, sid)
        service.submit_scores(sid, Stage.PROPOSAL, "Dr. Bello", {"Clarity": 85, "Originality": 90})
        assert service.composite(sid, Stage.PROPOSAL) == 89

        outcome = service.approve(sid, Stage.PROPOSAL, ActorRole.HOD, actor="Prof. Hod")
        assert outcome.composite == 89
        assert outcome.record.current_stage is Stage.PROPOSAL

        assert service.advance(sid).current_stage is Stage.INTERNAL_DEFENSE
        session.commit()

        record = service.get_record(sid)
        assert record.stage_scores == {Stage.START: 0, Stage.PROPOSAL: 89}
        assert record.approved_by[Stage.PROPOSAL] is ActorRole.HOD
        approval = session.query(StageApprovalORM).filter_by(student_id=sid, stage="proposal").one()
        assert approval.approved_by == "Prof. Hod"

    def test_phd_runs_to_completion(self, service):
        sid = enroll(service, program=Program.PHD).student_id
        stages = []
        while not service.get_record(sid).completed:
            current = service.get_record(sid).current_stage
            stages.append(current)
            service.approve(sid, current, APPROVERS[current])
            service.advance(sid)

        assert stages == [
            Stage.START,
            Stage.PROPOSAL_DEFENSE,
            Stage.SECOND_SEMINAR,
            Stage.THIRD_SEMINAR,
            Stage.EXTERNAL_DEFENSE,
        ]
        with pytest.raises(AlreadyCompletedError):
            service.advance(sid)
        with pytest.raises(AlreadyCompletedError):
            service.approve(sid, Stage.EXTERNAL_DEFENSE, ActorRole.PROVOST)
        with pytest.raises(AlreadyCompletedError):
            service.submit_scores(sid, Stage.COMPLETED, "Dr. Bello", {})

    def test_premature_advance_leaves_stage(self, service):
        sid = enroll(service).student_id
        with pytest.raises(StageNotApprovedError):
            service.advance(sid)
        assert service.get_record(sid).current_stage is Stage.START

    def test_approve_twice_is_a_noop(self, service, session):
        sid = enroll(service).student_id
        first = service.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR)
        second = service.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR)
        assert first.already_approved is False
        assert second.already_approved is True
        assert second.composite == first.composite
        assert session.query(StageApprovalORM).filter_by(student_id=sid).count() == 1

    def test_unauthorized_approval_changes_nothing(self, service):
        sid = enroll(service).student_id
        with pytest.raises(ApprovalNotAuthorizedError):
            service.approve(sid, Stage.START, ActorRole.HOD)
        assert service.get_record(sid).approval_status(Stage.START) is ApprovalStatus.PENDING

    def test_rubric_required_when_configured(self, session, notifier, monkeypatch):
        monkeypatch.setenv("APP_REQUIRE_RUBRIC_FOR_APPROVAL", "true")
        reset_settings()
        service = ProgressionService(session, notifier=notifier)
        sid = enroll(service).student_id

        move_to_proposal(service, sid)  # start gate is exempt
        with pytest.raises(NoRubricPublishedError):
            service.approve(sid, Stage.PROPOSAL, ActorRole.HOD)

        publish_proposal_rubric(session)
        assert service.approve(sid, Stage.PROPOSAL, ActorRole.HOD).composite == 0

    def test_every_mutation_bumps_version(self, service, session):
        sid = enroll(service).student_id
        student = session.get(StudentORM, sid)
        versions = [student.version]
        service.assign_panel_role(sid, PanelRole.MAJOR_SUPERVISOR, "Dr. Bello")
        versions.append(student.version)
        service.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR)
        versions.append(student.version)
        service.advance(sid)
        versions.append(student.version)
        assert versions == sorted(set(versions))

    def test_activity_log_records_workflow(self, service, session):
        sid = enroll(service).student_id
        move_to_proposal(service, sid)
        actions = [entry.action for entry in ActivityLogRepo(session).list_for_entity("Student", sid)]
        assert actions == ["enroll", "approve_stage", "advance_stage"]


class TestNotifications:
    def test_student_and_panel_notified(self, service, notifier):
        sid = enroll(service).student_id
        service.assign_panel_role(sid, PanelRole.MAJOR_SUPERVISOR, "Dr. Bello")
        move_to_proposal(service, sid)

        recipients = [(n.recipient, n.role) for n in notifier.sent]
        assert recipients == [
            ("PG/2024/001", "student"),
            ("Dr. Bello", "major_supervisor"),
            ("PG/2024/001", "student"),
            ("Dr. Bello", "major_supervisor"),
        ]
        assert "Start approved" in notifier.sent[0].message
        assert "Proposal" in notifier.sent[-1].message

    def test_failed_delivery_does_not_block_approval(self, session):
        failing = FailingNotifier()
        service = ProgressionService(session, notifier=failing)
        sid = enroll(service).student_id

        outcome = service.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR)
        assert outcome.already_approved is False
        assert failing.attempts == 1
        assert service.advance(sid).current_stage is Stage.PROPOSAL

    def test_database_notifier_is_default(self, session):
        service = ProgressionService(session)
        sid = enroll(service).student_id
        service.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR)
        session.commit()

        inbox = NotificationRepo(session).list_for_recipient("PG/2024/001")
        assert len(inbox) == 1
        assert inbox[0].read is False
        assert NotificationRepo(session).mark_read(inbox[0].id).read is True
        assert NotificationRepo(session).mark_read(9999) is None
        assert NotificationRepo(session).list_for_recipient("PG/2024/001", unread_only=True) == []

    def test_approval_notifications_can_be_disabled(self, session, notifier, monkeypatch):
        monkeypatch.setenv("APP_NOTIFY_ON_APPROVE", "false")
        reset_settings()
        service = ProgressionService(session, notifier=notifier)
        sid = enroll(service).student_id
        service.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR)
        assert notifier.sent == []


class TestPanel:
    def test_assignment_replaces_previous(self, service):
        sid = enroll(service).student_id
        assert service.assign_panel_role(sid, PanelRole.INTERNAL_EXAMINER, "Dr. Musa") is None
        assert service.assign_panel_role(sid, PanelRole.INTERNAL_EXAMINER, "Dr. Ade") == "Dr. Musa"
        assert service.list_panel(sid) == {PanelRole.INTERNAL_EXAMINER: "Dr. Ade"}

    def test_votes_are_recorded_but_do_not_approve(self, service):
        sid = enroll(service).student_id
        service.assign_panel_role(sid, PanelRole.INTERNAL_EXAMINER, "Dr. Musa")
        vote = service.cast_vote(sid, Stage.START, "Dr. Musa", VoteDecision.APPROVE, "Ready")
        assert vote.panel_role is PanelRole.INTERNAL_EXAMINER

        votes = service.list_votes(sid, Stage.START)
        assert [(v.panel_member, v.decision, v.comment) for v in votes] == [
            ("Dr. Musa", VoteDecision.APPROVE, "Ready")
        ]
        assert service.get_record(sid).approval_status(Stage.START) is ApprovalStatus.PENDING

    def test_completed_student_panel_is_frozen(self, service):
        sid = enroll(service).student_id
        service.assign_panel_role(sid, PanelRole.EXTERNAL_EXAMINER, "Prof. Udo")
        while not service.get_record(sid).completed:
            current = service.get_record(sid).current_stage
            service.approve(sid, current, APPROVERS[current])
            service.advance(sid)

        with pytest.raises(AlreadyCompletedError):
            service.assign_panel_role(sid, PanelRole.EXTERNAL_EXAMINER, "Prof. Late")
        with pytest.raises(AlreadyCompletedError):
            service.cast_vote(sid, Stage.EXTERNAL_DEFENSE, "Prof. Late", VoteDecision.REJECT)
        assert service.list_panel(sid) == {PanelRole.EXTERNAL_EXAMINER: "Prof. Udo"}
        assert service.list_votes(sid, Stage.EXTERNAL_DEFENSE) == []

    @pytest.mark.parametrize("stage", [Stage.SECOND_SEMINAR, Stage.COMPLETED])
    def test_vote_on_stage_outside_programme_rejected(self, service, stage):
        sid = enroll(service).student_id
        with pytest.raises(ValidationError):
            service.cast_vote(sid, stage, "Dr. Musa", VoteDecision.REJECT)
        assert service.list_votes(sid, stage) == []


class TestDefences:
    def test_schedule_groups_students_and_notifies(self, service, session, notifier):
        first = enroll(service).student_id
        second = enroll(service, matric_no="PG/2024/002").student_id
        move_to_proposal(service, first)
        move_to_proposal(service, second)
        service.assign_panel_role(first, PanelRole.INTERNAL_EXAMINER, "Dr. Musa")
        notifier.sent.clear()

        defences = DefenceService(session, notifier=notifier)
        defence = defences.schedule(
            Stage.PROPOSAL, datetime(2026, 11, 2, 10), [first, second], venue=" Senate Room "
        )
        assert defence.status is DefenceStatus.SCHEDULED
        assert defence.student_ids == (first, second)
        assert defence.venue == "Senate Room"
        assert [n.recipient for n in notifier.sent] == ["PG/2024/001", "Dr. Musa", "PG/2024/002"]
        message = notifier.sent[0].message
        assert "Proposal defence of PG/2024/001 scheduled for 2026-11-02 10:00" in message
        assert [d.defence_id for d in defences.list_defences(Stage.PROPOSAL)] == [defence.defence_id]
        assert defences.list_defences(Stage.INTERNAL_DEFENSE) == []

    def test_scores_only_while_defence_runs(self, service, session):
        sid = enroll(service).student_id
        move_to_proposal(service, sid)
        publish_proposal_rubric(session)
        defences = DefenceService(session, notifier=RecordingNotifier())
        defence = defences.schedule(Stage.PROPOSAL, datetime(2026, 11, 2, 10), [sid])

        with pytest.raises(DefenceNotRunningError) as exc:
            service.submit_scores(sid, Stage.PROPOSAL, "Dr. Bello", {"Clarity": 80})
        assert exc.value.code == "DefenceNotRunning"

        assert defences.start(defence.defence_id).status is DefenceStatus.IN_PROGRESS
        service.submit_scores(sid, Stage.PROPOSAL, "Dr. Bello", {"Clarity": 80, "Originality": 90})
        ended = defences.end(defence.defence_id)
        assert ended.status is DefenceStatus.ENDED
        assert ended.started_at <= ended.ended_at

        with pytest.raises(DefenceNotRunningError):
            service.submit_scores(sid, Stage.PROPOSAL, "Dr. Bello", {"Clarity": 10})
        assert service.composite(sid, Stage.PROPOSAL) == 87

    def test_defence_of_another_student_does_not_open_scoring(self, service, session):
        first = enroll(service).student_id
        second = enroll(service, matric_no="PG/2024/002").student_id
        move_to_proposal(service, first)
        move_to_proposal(service, second)
        publish_proposal_rubric(session)
        open_defence(session, first)
        with pytest.raises(DefenceNotRunningError):
            service.submit_scores(second, Stage.PROPOSAL, "Dr. Bello", {"Clarity": 80})

    def test_transitions_run_in_order(self, service, session):
        sid = enroll(service).student_id
        defences = DefenceService(session, notifier=RecordingNotifier())
        defence = defences.schedule(Stage.START, datetime(2026, 11, 2, 10), [sid])
        with pytest.raises(DefenceStateError):
            defences.end(defence.defence_id)
        defences.start(defence.defence_id)
        with pytest.raises(DefenceStateError) as exc:
            defences.start(defence.defence_id)
        assert exc.value.code == "DefenceState"
        defences.end(defence.defence_id)
        with pytest.raises(DefenceStateError):
            defences.end(defence.defence_id)

        entries = ActivityLogRepo(session).list_for_entity("Defence", defence.defence_id)
        actions = [entry.action for entry in entries]
        assert actions == ["schedule_defence", "start_defence", "end_defence"]

    def test_schedule_checks_every_student(self, service, session):
        sid = enroll(service).student_id
        defences = DefenceService(session, notifier=RecordingNotifier())
        when = datetime(2026, 11, 2, 10)
        with pytest.raises(StageMismatchError):
            defences.schedule(Stage.PROPOSAL, when, [sid])
        with pytest.raises(ValidationError):
            defences.schedule(Stage.START, when, [])
        with pytest.raises(ValidationError):
            defences.schedule(Stage.START, when, [sid, sid])
        with pytest.raises(StudentNotFoundError):
            defences.schedule(Stage.START, when, [sid, 999])
        with pytest.raises(DefenceNotFoundError):
            defences.start(999)
        assert defences.list_defences() == []

    def test_approved_stage_cannot_be_scheduled(self, service, session):
        sid = enroll(service).student_id
        service.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR)
        with pytest.raises(ScoringClosedError):
            DefenceService(session, notifier=RecordingNotifier()).schedule(
                Stage.START, datetime(2026, 11, 2, 10), [sid]
            )

    def test_schedule_notifications_can_be_disabled(self, service, session, monkeypatch):
        monkeypatch.setenv("APP_NOTIFY_ON_SCHEDULE", "false")
        reset_settings()
        sid = enroll(service).student_id
        quiet = RecordingNotifier()
        DefenceService(session, notifier=quiet).schedule(
            Stage.START, datetime(2026, 11, 2, 10), [sid]
        )
        assert quiet.sent == []

def test_concurrent_approval_loses_version_check(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", future=True)
    initialise_database(engine)
    SessionLocal = create_session_factory(engine)

    with SessionLocal() as setup:
        sid = enroll(ProgressionService(setup, notifier=RecordingNotifier())).student_id
        setup.commit()

    first, second = SessionLocal(), SessionLocal()
    try:
        winner = ProgressionService(first, notifier=RecordingNotifier())
        loser = ProgressionService(second, notifier=RecordingNotifier())
        # both writers read the student before either writes
        winner.get_record(sid)
        loser.get_record(sid)

        winner.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR)
        first.commit()

        with pytest.raises(ConcurrencyConflictError) as exc:
            loser.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR)
        assert exc.value.code == "ConcurrencyConflict"
        second.rollback()

        retry = loser.approve(sid, Stage.START, ActorRole.MAJOR_SUPERVISOR)
        assert retry.already_approved is True
    finally:
        first.close()
        second.close()
        engine.dispose()
