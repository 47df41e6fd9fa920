"""
Custom exception classes for the defense tracking application.

Provides structured error handling with user-friendly messages and a stable
``code`` per error kind, so the web layer can map failures to HTTP responses
without inspecting message text.
"""

from __future__ import annotations

from typing import Any


class DefenseTrackerError(Exception):
    """Base exception for all application errors."""

    code = "DefenseTrackerError"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.user_message = user_message or self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        """Provide a user-friendly version of the error message."""
        return "An unexpected error occurred. Please try again."

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class ValidationError(DefenseTrackerError):
    """Raised when input validation fails."""

    code = "ValidationError"

    def __init__(
        self, field: str, message: str, value: Any = None, details: dict[str, Any] | None = None
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=f"Validation failed for field '{field}': {message}",
            details=details or {"field": field, "value": value},
            user_message=f"Invalid {field.replace('_', ' ')}: {message}",
        )

    def _get_default_user_message(self) -> str:
        return f"Please check your input for {self.field.replace('_', ' ')} and try again."


class ScoreOutOfRangeError(ValidationError):
    """Raised at the score-entry boundary for values outside 0..100."""

    code = "ScoreOutOfRange"

    def __init__(self, criterion: str, value: Any):
        self.criterion = criterion
        super().__init__(
            field="score",
            message=f"score for '{criterion}' must be a whole number between 0 and 100",
            value=value,
            details={"criterion": criterion, "value": value},
        )


# ---------------------------------------------------------------------------
# Rubric construction
# ---------------------------------------------------------------------------


class RubricError(DefenseTrackerError):
    """Raised when a criterion set cannot be built or published."""

    code = "RubricError"

    def __init__(
        self, message: str, stage: str | None = None, details: dict[str, Any] | None = None
    ):
        self.stage = stage
        super().__init__(
            message=message,
            details=details or {"stage": stage},
            user_message=self._get_default_user_message(),
        )

    def _get_default_user_message(self) -> str:
        return "The scoring rubric is not valid. Please review the criteria and try again."


class DuplicateCriterionError(RubricError):
    code = "DuplicateCriterion"

    def __init__(self, title: str, stage: str | None = None):
        self.title = title
        super().__init__(
            message=f"Criterion '{title}' already exists in this rubric",
            stage=stage,
            details={"title": title, "stage": stage},
        )

    def _get_default_user_message(self) -> str:
        return f"A criterion named '{self.title}' already exists. Please use a different title."


class InvalidWeightError(RubricError):
    code = "InvalidWeight"

    def __init__(self, title: str, percentage: Any, stage: str | None = None):
        self.title = title
        self.percentage = percentage
        super().__init__(
            message=f"Criterion '{title}' has invalid percentage {percentage!r}",
            stage=stage,
            details={"title": title, "percentage": percentage, "stage": stage},
        )

    def _get_default_user_message(self) -> str:
        return (
            "Criterion weight must be greater than 0 and at most 100, "
            "with at most two decimal places."
        )


class UnbalancedWeightsError(RubricError):
    code = "UnbalancedWeights"

    def __init__(self, total: Any, stage: str | None = None):
        self.total = total
        super().__init__(
            message=f"Criteria weights must add up to 100 (currently {total})",
            stage=stage,
            details={"total": str(total), "stage": stage},
        )

    def _get_default_user_message(self) -> str:
        return f"Criteria weights must add up to 100; they currently add up to {self.total}."


class RubricLockedError(RubricError):
    code = "RubricLocked"

    def __init__(self, stage: str | None = None):
        super().__init__(message=f"Rubric for stage {stage} is already published", stage=stage)

    def _get_default_user_message(self) -> str:
        return "This rubric has been published and can no longer be edited."


class NoRubricPublishedError(RubricError):
    code = "NoRubricPublished"

    def __init__(self, stage: str | None = None):
        super().__init__(message=f"No rubric has been published for stage {stage}", stage=stage)

    def _get_default_user_message(self) -> str:
        return "No scoring rubric has been published for this stage yet."


# ---------------------------------------------------------------------------
# Workflow sequencing
# ---------------------------------------------------------------------------


class WorkflowError(DefenseTrackerError):
    """Raised when a stage operation does not match the student's current state."""

    code = "WorkflowError"

    def __init__(
        self,
        message: str,
        student_id: Any = None,
        stage: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.student_id = student_id
        self.stage = stage
        super().__init__(
            message=message,
            details=details or {"student_id": student_id, "stage": stage},
            user_message=self._get_default_user_message(),
        )

    def _get_default_user_message(self) -> str:
        return "This student's progress has changed. Please refresh and try again."


class StageNotApprovedError(WorkflowError):
    code = "StageNotApproved"

    def __init__(self, student_id: Any, stage: str):
        super().__init__(
            message=f"Stage {stage} of student {student_id} has not been approved",
            student_id=student_id,
            stage=stage,
        )

    def _get_default_user_message(self) -> str:
        return "The current stage must be approved before the student can move on."


class StageMismatchError(WorkflowError):
    code = "StageMismatch"

    def __init__(self, student_id: Any, stage: str, current_stage: str):
        self.current_stage = current_stage
        super().__init__(
            message=(
                f"Stage {stage} is not the current stage of student {student_id} "
                f"(current: {current_stage})"
            ),
            student_id=student_id,
            stage=stage,
            details={"student_id": student_id, "stage": stage, "current_stage": current_stage},
        )


class AlreadyCompletedError(WorkflowError):
    code = "AlreadyCompleted"

    def __init__(self, student_id: Any):
        super().__init__(
            message=f"Student {student_id} has already completed all stages",
            student_id=student_id,
        )

    def _get_default_user_message(self) -> str:
        return "This student has already completed the programme."


class ScoringClosedError(WorkflowError):
    code = "ScoringClosed"

    def __init__(self, student_id: Any, stage: str):
        super().__init__(
            message=f"Stage {stage} of student {student_id} is approved; scores are closed",
            student_id=student_id,
            stage=stage,
        )

    def _get_default_user_message(self) -> str:
        return "Scores can no longer be changed because this stage has been approved."


class DefenceStateError(WorkflowError):
    """Raised when a defence is started or ended out of order."""

    code = "DefenceState"

    def __init__(self, defence_id: Any, status: str, action: str):
        self.defence_id = defence_id
        self.status = status
        super().__init__(
            message=f"Defence {defence_id} is {status} and cannot be {action}",
            details={"defence_id": defence_id, "status": status, "action": action},
        )

    def _get_default_user_message(self) -> str:
        return "This defence has changed state. Please refresh and try again."


class DefenceNotRunningError(WorkflowError):
    code = "DefenceNotRunning"

    def __init__(self, student_id: Any, stage: str):
        super().__init__(
            message=f"No defence of stage {stage} is in progress for student {student_id}",
            student_id=student_id,
            stage=stage,
        )

    def _get_default_user_message(self) -> str:
        return "Scores can only be submitted while the student's defence is in progress."


class ApprovalNotAuthorizedError(DefenseTrackerError):
    code = "ApprovalNotAuthorized"

    def __init__(self, stage: str, actor_role: str, allowed: list[str] | None = None):
        self.stage = stage
        self.actor_role = actor_role
        super().__init__(
            message=f"Role {actor_role} may not approve stage {stage}",
            details={"stage": stage, "actor_role": actor_role, "allowed_roles": allowed or []},
            user_message="You don't have permission to approve this stage.",
        )


class StudentNotFoundError(DefenseTrackerError):
    code = "UnknownStudent"

    def __init__(self, student_id: Any):
        self.student_id = student_id
        super().__init__(
            message=f"Student with ID {student_id} not found",
            details={"student_id": student_id},
            user_message="The selected student could not be found. Please refresh and try again.",
        )


class DefenceNotFoundError(DefenseTrackerError):
    code = "UnknownDefence"

    def __init__(self, defence_id: Any):
        self.defence_id = defence_id
        super().__init__(
            message=f"Defence with ID {defence_id} not found",
            details={"defence_id": defence_id},
            user_message="The selected defence could not be found. Please refresh and try again.",
        )


class NotificationNotFoundError(DefenseTrackerError):
    code = "UnknownNotification"

    def __init__(self, notification_id: Any):
        self.notification_id = notification_id
        super().__init__(
            message=f"Notification with ID {notification_id} not found",
            details={"notification_id": notification_id},
            user_message="The selected notification could not be found.",
        )


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class DatabaseError(DefenseTrackerError):
    """Raised when database operations fail."""

    code = "DatabaseError"

    def __init__(self, message: str, operation: str, details: dict[str, Any] | None = None):
        self.operation = operation
        super().__init__(
            message=f"Database error during {operation}: {message}",
            details=details or {"operation": operation},
            user_message=self._get_default_user_message(),
        )

    def _get_default_user_message(self) -> str:
        return "Unable to save your changes. Please try again."


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""

    code = "ConnectionError"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, operation="connection", details=details)

    def _get_default_user_message(self) -> str:
        return "Unable to connect to the database. Please check your connection and try again."


class IntegrityError(DatabaseError):
    """Raised when database integrity constraints are violated."""

    code = "IntegrityError"

    def __init__(
        self,
        message: str,
        constraint: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.constraint = constraint
        super().__init__(
            message=message,
            operation="integrity_check",
            details=details or {"constraint": constraint},
        )

    def _get_default_user_message(self) -> str:
        if self.constraint:
            if "unique" in self.constraint.lower():
                return "This item already exists. Please check for a duplicate constraint."
            elif "foreign" in self.constraint.lower():
                return "Referenced item no longer exists. Please refresh and try again."
        return "Data integrity constraint violated. Please check your input and try again."


class ConcurrencyConflictError(DatabaseError):
    """Raised when a student record was changed by another writer in the meantime."""

    code = "ConcurrencyConflict"

    def __init__(self, message: str, student_id: Any = None):
        self.student_id = student_id
        super().__init__(
            message=message,
            operation="optimistic_lock",
            details={"student_id": student_id},
        )

    def _get_default_user_message(self) -> str:
        return "Someone else updated this student at the same time. Please refresh and retry."


class ConfigurationError(DefenseTrackerError):
    """Raised when configuration is invalid."""

    code = "ConfigurationError"

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            details=details or {"config_key": config_key},
            user_message="Configuration error. Please check your settings.",
        )


def handle_database_error(e: Exception, operation: str = "database operation") -> DatabaseError:
    """
    Convert generic database exceptions to appropriate custom exceptions.

    Args:
        e: The original exception
        operation: Description of the operation that failed

    Returns:
        Appropriate DatabaseError subclass

    Example:
        >>> try:
        ...     session.commit()
        >>> except Exception as e:
        ...     raise handle_database_error(e, "commit transaction")
    """
    error_msg = str(e).lower()

    if "staledata" in type(e).__name__.lower() or "expected to update" in error_msg:
        return ConcurrencyConflictError(str(e))
    if "connection" in error_msg or "timeout" in error_msg:
        return ConnectionError(str(e))
    elif "unique constraint" in error_msg or "duplicate" in error_msg:
        return IntegrityError(str(e), constraint="unique")
    elif "foreign key" in error_msg or "foreign_key" in error_msg:
        return IntegrityError(str(e), constraint="foreign_key")
    elif "check constraint" in error_msg:
        return IntegrityError(str(e), constraint="check")
    else:
        return DatabaseError(str(e), operation)


def create_user_friendly_error_message(error: Exception) -> str:
    """
    Create a user-friendly error message from any exception.

    Example:
        >>> error = ValidationError("matric_no", "cannot be empty")
        >>> create_user_friendly_error_message(error)
        'Invalid matric no: cannot be empty'
    """
    if isinstance(error, DefenseTrackerError):
        return error.user_message

    error_type = type(error).__name__
    messages = {
        "ValueError": "Invalid input provided. Please check your data and try again.",
        "KeyError": "Required information is missing. Please check your input.",
        "TypeError": "Incorrect data type provided. Please check your input format.",
    }
    return messages.get(
        error_type, "An unexpected error occurred. Please try again or contact support."
    )


def log_error_details(error: Exception, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create structured error details for logging.

    Args:
        error: The exception to log
        context: Additional context information

    Returns:
        Dictionary with structured error details
    """
    details = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
    }

    if isinstance(error, DefenseTrackerError):
        details.update(
            {
                "error_code": error.code,
                "user_message": error.user_message,
                "error_details": error.details,
            }
        )

    return details
