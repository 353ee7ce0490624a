"""Error taxonomy for the attempt engine.

Every error knows the HTTP status and machine-readable code it maps to, so
the FastAPI boundary can translate it without inspecting messages.
"""

from typing import Any, Dict, Optional


class AttemptEngineError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def extra(self) -> Dict[str, Any]:
        """Additional fields merged into the JSON error body."""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message, "code": self.code}
        body.update(self.extra())
        return body


# ===================== NOT FOUND =====================


class NotFound(AttemptEngineError):
    status_code = 404
    code = "NOT_FOUND"


class TestNotFound(NotFound):
    __test__ = False
    code = "TEST_NOT_FOUND"

    def __init__(self, test_id: str):
        super().__init__("Test not found")
        self.test_id = test_id


class AttemptNotFound(NotFound):
    code = "ATTEMPT_NOT_FOUND"

    def __init__(self, attempt_id: str):
        super().__init__("Test attempt not found")
        self.attempt_id = attempt_id


class AnswerNotFound(NotFound):
    code = "ANSWER_NOT_FOUND"

    def __init__(self, attempt_id: str, question_id: str):
        super().__init__("Answer record not found")
        self.attempt_id = attempt_id
        self.question_id = question_id

    def extra(self) -> Dict[str, Any]:
        return {"questionId": self.question_id}


# ===================== PRECONDITIONS =====================


class PreconditionFailed(AttemptEngineError):
    status_code = 400
    code = "PRECONDITION_FAILED"


class TestNotLive(PreconditionFailed):
    __test__ = False
    code = "TEST_NOT_LIVE"

    def __init__(self, test_id: str):
        super().__init__("Test is not live")
        self.test_id = test_id


class AlreadyCompleted(PreconditionFailed):
    code = "ALREADY_COMPLETED"

    def __init__(self, attempt_id: Optional[str] = None, message: Optional[str] = None):
        super().__init__(message or "Test attempt is already completed")
        self.attempt_id = attempt_id

    def extra(self) -> Dict[str, Any]:
        return {"attemptId": self.attempt_id} if self.attempt_id else {}


class AttemptInProgress(PreconditionFailed):
    status_code = 409
    code = "ATTEMPT_IN_PROGRESS"

    def __init__(self):
        super().__init__("Another attempt for this candidate is already in progress")


class ResumePermissionRequired(PreconditionFailed):
    status_code = 403
    code = "RESUME_PERMISSION_REQUIRED"

    def __init__(self, attempt_id: str):
        super().__init__("Resume permission required")
        self.attempt_id = attempt_id

    def extra(self) -> Dict[str, Any]:
        return {"needsResume": True, "attemptId": self.attempt_id}


# ===================== VALIDATION =====================


class InvalidRequest(AttemptEngineError):
    status_code = 400
    code = "VALIDATION_ERROR"


# ===================== PERSISTENCE =====================


class StoreError(AttemptEngineError):
    """Permanent persistence failure; retrying will not help."""

    status_code = 500
    code = "DATABASE_ERROR"

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message)


class TransientStoreError(StoreError):
    """Connectivity or timeout failure that may succeed if retried."""

    status_code = 503
    code = "DATABASE_UNAVAILABLE"

    def __init__(self, message: str = "Database temporarily unavailable", retry_after: int = 30):
        super().__init__(message)
        self.retry_after = retry_after

    def extra(self) -> Dict[str, Any]:
        return {"retryAfter": self.retry_after}
