"""Test attempt routes: start, sync, submit, warnings, time tracking, resume."""

from typing import List, Union

from fastapi import APIRouter, Depends, Request
from fastapi import status as http_status

from proctored_exam.config import Settings
from proctored_exam.database import Database, get_database
from proctored_exam.schemas import (
    AttemptDetailOut,
    AttemptOut,
    AttemptRefIn,
    PendingResumeOut,
    QuestionTimeIn,
    QuestionTimeOut,
    ResumeOut,
    StartAttemptIn,
    SubmitAttemptIn,
    SyncAnswersIn,
    SyncAnswersOut,
    SyncTimesIn,
    SyncTimesOut,
    TestSummaryOut,
    WarningOut,
)
from proctored_exam.services import answer_sync, attempt_lifecycle, resume, time_tracker
from proctored_exam.services.attempt_store import AttemptStore

router = APIRouter()


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


@router.post(
    "/start",
    response_model=AttemptDetailOut,
    status_code=http_status.HTTP_201_CREATED,
)
def start_attempt(payload: StartAttemptIn, db: Database = Depends(get_database)):
    """Start a fresh attempt, or refuse with 403 while resume is pending."""

    def work(store: AttemptStore) -> AttemptDetailOut:
        view = attempt_lifecycle.start_attempt(
            store, payload.test_id, payload.candidate_name, payload.candidate_image
        )
        return AttemptDetailOut.from_view(view)

    return db.run(work)


@router.post("/sync", response_model=SyncAnswersOut)
def sync_answers(payload: SyncAnswersIn, db: Database = Depends(get_database)):
    """Periodic save of in-progress answers (no scoring)."""
    updates = [a.to_update() for a in payload.answers]

    def work(store: AttemptStore) -> SyncAnswersOut:
        result = answer_sync.sync_answers(store, payload.attempt_id, updates)
        return SyncAnswersOut.from_result(result)

    return db.run(work)


@router.post("/submit", response_model=AttemptDetailOut)
def submit_attempt(payload: SubmitAttemptIn, db: Database = Depends(get_database)):
    """Score and complete the attempt."""
    answers = [a.to_submitted() for a in payload.answers]

    def work(store: AttemptStore) -> AttemptDetailOut:
        view = attempt_lifecycle.submit_attempt(store, payload.attempt_id, answers)
        return AttemptDetailOut.from_view(view)

    return db.run(work)


@router.post("/warning", response_model=Union[AttemptDetailOut, WarningOut])
def record_warning(
    payload: AttemptRefIn,
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings_from_app),
):
    """Count a proctoring warning; returns the scored attempt once the limit is hit."""

    def work(store: AttemptStore) -> Union[AttemptDetailOut, WarningOut]:
        outcome = attempt_lifecycle.record_warning(
            store, payload.attempt_id, warning_limit=settings.WARNING_LIMIT
        )
        if outcome.auto_submitted:
            return AttemptDetailOut.from_view(outcome.submitted)
        return WarningOut(warning_count=outcome.warning_count)

    return db.run(work)


# ===================== TIME TRACKING =====================


@router.put("/{attempt_id}/question-time", response_model=QuestionTimeOut)
def update_question_time(
    attempt_id: str, payload: QuestionTimeIn, db: Database = Depends(get_database)
):
    def work(store: AttemptStore) -> QuestionTimeOut:
        recorded = time_tracker.record_question_time(
            store, attempt_id, payload.question_id, payload.time_spent, payload.action
        )
        return QuestionTimeOut(time_spent=recorded.time_spent, visit_count=recorded.visit_count)

    return db.run(work)


@router.put("/{attempt_id}/sync-times", response_model=SyncTimesOut)
def sync_question_times(
    attempt_id: str, payload: SyncTimesIn, db: Database = Depends(get_database)
):
    def work(store: AttemptStore) -> SyncTimesOut:
        updated = time_tracker.sync_question_times(store, attempt_id, payload.question_times)
        return SyncTimesOut(updated_questions=updated)

    return db.run(work)


@router.get("/{attempt_id}/time-analytics")
def get_time_analytics(attempt_id: str, db: Database = Depends(get_database)):
    return db.run(lambda store: time_tracker.time_analytics(store, attempt_id))


# ===================== RESUME PERMISSION =====================
# Declared before /{attempt_id} so the literal paths win.


@router.post("/request-resume", response_model=ResumeOut)
def request_resume(payload: AttemptRefIn, db: Database = Depends(get_database)):
    def work(store: AttemptStore) -> None:
        resume.request_resume(store, payload.attempt_id)

    db.run(work)
    return ResumeOut(message="Resume permission requested")


@router.post("/allow-resume", response_model=ResumeOut)
def allow_resume(payload: AttemptRefIn, db: Database = Depends(get_database)):
    def work(store: AttemptStore) -> None:
        resume.allow_resume(store, payload.attempt_id)

    db.run(work)
    return ResumeOut(message="Resume permission granted")


@router.get("/resume-requests", response_model=List[PendingResumeOut])
def list_resume_requests(db: Database = Depends(get_database)):
    def work(store: AttemptStore) -> List[PendingResumeOut]:
        return [
            PendingResumeOut(
                **AttemptOut.model_validate(attempt).model_dump(),
                test=TestSummaryOut.from_test(test),
            )
            for attempt, test in resume.list_pending(store)
        ]

    return db.run(work)


# ===================== READ ACCESSORS =====================


@router.get("/user/{candidate_name}", response_model=List[AttemptDetailOut])
def list_candidate_attempts(candidate_name: str, db: Database = Depends(get_database)):
    def work(store: AttemptStore) -> List[AttemptDetailOut]:
        views = attempt_lifecycle.list_candidate_attempts(store, candidate_name)
        return [AttemptDetailOut.from_view(v) for v in views]

    return db.run(work)


@router.get("/{attempt_id}", response_model=AttemptDetailOut)
def get_attempt(attempt_id: str, db: Database = Depends(get_database)):
    def work(store: AttemptStore) -> AttemptDetailOut:
        return AttemptDetailOut.from_view(attempt_lifecycle.get_attempt_view(store, attempt_id))

    return db.run(work)
