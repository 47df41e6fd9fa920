from decimal import Decimal

from defense_tracker.domain.models import Program, Stage
from defense_tracker.domain.schemas import (
    AcademicSessionInput,
    CriterionInput,
    PanelAssignmentInput,
    ScoreSheetInput,
    StudentEnrollmentInput,
    validate_input,
)


def test_enrollment_normalises_matric_no():
    result = validate_input(
        StudentEnrollmentInput,
        {
            "matric_no": " pg/2024/001 ",
            "full_name": "Ada Obi",
            "program": "msc",
            "department": "Physics",
            "project_topic": "   ",
        },
    )
    assert result.success is True
    assert result.data["matric_no"] == "PG/2024/001"
    assert result.data["program"] is Program.MSC
    assert result.data["project_topic"] is None


def test_enrollment_rejects_unknown_program_and_bad_matric():
    result = validate_input(
        StudentEnrollmentInput,
        {"matric_no": "PG 2024", "full_name": "Ada", "program": "mba", "department": "Physics"},
    )
    assert result.success is False
    fields = {e.field for e in result.errors}
    assert {"matric_no", "program"} <= fields


def test_input_sanitization_strips_markup():
    result = validate_input(
        StudentEnrollmentInput,
        {
            "matric_no": "PG/1",
            "full_name": "<script>alert('x')</script><b>Ada</b> Obi",
            "program": "phd",
            "department": "Physics",
        },
    )
    assert result.success is True
    assert result.data["full_name"] == "Ada Obi"


def test_session_name_must_be_consecutive_years():
    ok = validate_input(AcademicSessionInput, {"name": "2024/2025", "department": "Physics"})
    assert ok.success is True
    bad = validate_input(AcademicSessionInput, {"name": "2024/2026", "department": "Physics"})
    assert bad.success is False
    dates = validate_input(
        AcademicSessionInput,
        {
            "name": "2024/2025",
            "department": "Physics",
            "start_date": "2024-10-01",
            "end_date": "2024-09-01",
        },
    )
    assert dates.success is False


def test_criterion_input_keeps_weight_exact():
    result = validate_input(
        CriterionInput, {"stage": "proposal", "title": " Clarity ", "percentage": "12.5"}
    )
    assert result.success is True
    assert result.data["title"] == "Clarity"
    assert result.data["percentage"] == Decimal("12.5")
    assert result.data["stage"] is Stage.PROPOSAL


def test_criterion_input_rejects_completed_stage():
    result = validate_input(
        CriterionInput, {"stage": "completed", "title": "Clarity", "percentage": 10}
    )
    assert result.success is False


def test_score_sheet_rejects_duplicate_titles():
    result = validate_input(
        ScoreSheetInput,
        {
            "student_id": 1,
            "stage": "proposal",
            "panel_member": "Dr. Bello",
            "scores": {"Clarity": 80, " clarity": 70},
        },
    )
    assert result.success is False
    assert result.errors[0].field == "scores"


def test_score_sheet_leaves_values_to_scoring_rules():
    result = validate_input(
        ScoreSheetInput,
        {
            "student_id": 1,
            "stage": "proposal",
            "panel_member": "Dr. Bello",
            "scores": {" Clarity ": 150, "Originality": None},
        },
    )
    assert result.success is True
    assert result.data["scores"] == {"Clarity": 150, "Originality": None}


def test_panel_assignment_requires_known_role():
    result = validate_input(
        PanelAssignmentInput, {"student_id": 1, "role": "chancellor", "assignee": "X"}
    )
    assert result.success is False
    assert result.errors[0].field == "role"
