"""Attempt state machine: start, warnings, submission and read accessors.

NONE -> IN_PROGRESS -> COMPLETED. An in-progress attempt whose candidate
left the exam (``needs_resume`` without ``can_resume``) blocks a fresh
start until an examiner allows it.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from proctored_exam.errors import (
    AlreadyCompleted,
    AttemptNotFound,
    InvalidRequest,
    ResumePermissionRequired,
    TestNotFound,
    TestNotLive,
)
from proctored_exam.models import Answer, TestAttempt
from proctored_exam.services.attempt_store import AttemptStore, TestTree
from proctored_exam.services.resume import is_resume_blocked
from proctored_exam.services.scoring import AnswerKey, SubmittedAnswer, score_attempt
from proctored_exam.utils import sanitize_candidate_name, utcnow

logger = logging.getLogger(__name__)

DEFAULT_WARNING_LIMIT = 5


@dataclass
class AttemptView:
    """An attempt joined with its test content and answers."""

    attempt: TestAttempt
    tree: TestTree
    answers: List[Answer]


@dataclass
class WarningOutcome:
    warning_count: int
    submitted: Optional[AttemptView] = None

    @property
    def auto_submitted(self) -> bool:
        return self.submitted is not None


def _clean_candidate_name(candidate_name: str) -> str:
    name = sanitize_candidate_name(candidate_name)
    if not name:
        raise InvalidRequest("Candidate name is required")
    return name


def _build_view(store: AttemptStore, attempt: TestAttempt) -> AttemptView:
    tree = store.load_test_tree(store.get_test(attempt.test_id))
    rows = store.answers_by_question(attempt.id)
    ordered = [rows.pop(q.id) for q, _ in tree.questions() if q.id in rows]
    ordered.extend(rows.values())
    return AttemptView(attempt=attempt, tree=tree, answers=ordered)


def get_attempt_view(store: AttemptStore, attempt_id: str) -> AttemptView:
    attempt = store.get_attempt(attempt_id)
    if attempt is None:
        raise AttemptNotFound(attempt_id)
    return _build_view(store, attempt)


def list_candidate_attempts(store: AttemptStore, candidate_name: str) -> List[AttemptView]:
    """Completed attempts of a candidate, most recently finished first."""
    name = _clean_candidate_name(candidate_name)
    return [_build_view(store, a) for a in store.list_completed_attempts(name)]


def start_attempt(
    store: AttemptStore,
    test_id: str,
    candidate_name: str,
    candidate_image: Optional[str] = None,
) -> AttemptView:
    """Start a fresh attempt for a candidate on a live test.

    A completed attempt for the same (test, candidate) blocks the start.
    A stale incomplete attempt is replaced unless it is waiting on resume
    permission, in which case the start is refused with its id.
    """
    name = _clean_candidate_name(candidate_name)
    test = store.get_test(test_id)
    if test is None:
        raise TestNotFound(test_id)
    if not test.is_live:
        raise TestNotLive(test_id)

    existing = store.find_attempts(test_id, name)
    for previous in existing:
        if previous.is_completed:
            raise AlreadyCompleted(previous.id, "You have already completed this test")
    for previous in existing:
        if is_resume_blocked(previous):
            raise ResumePermissionRequired(previous.id)

    for previous_id in [previous.id for previous in existing]:
        logger.info("Replacing incomplete attempt %s for %s", previous_id, name)
        store.delete_attempt(previous_id)

    tree = store.load_test_tree(test)
    attempt = TestAttempt(test_id=test.id, candidate_name=name, candidate_image=candidate_image)
    store.create_attempt(attempt, [q.id for q, _ in tree.questions()])
    view = _build_view(store, attempt)
    attempt_id = attempt.id
    store.commit()

    logger.info("Attempt %s started on test %s by %s", attempt_id, test_id, name)
    return view


def submit_attempt(
    store: AttemptStore, attempt_id: str, answers: Iterable[SubmittedAnswer]
) -> AttemptView:
    """Score ``answers``, complete the attempt and end the test's live session.

    Everything is written in one transaction. Completion is claimed with a
    conditional update first, so a second submission for the same attempt
    (explicit or warning-triggered) fails with ``AlreadyCompleted``.
    """
    attempt = store.get_attempt(attempt_id)
    if attempt is None:
        raise AttemptNotFound(attempt_id)
    if attempt.is_completed:
        raise AlreadyCompleted(attempt_id)

    finished_at = utcnow()
    if not store.claim_completion(attempt_id, finished_at):
        raise AlreadyCompleted(attempt_id)

    tree = store.load_test_tree(store.get_test(attempt.test_id))
    keys = {
        question.id: AnswerKey.from_question(question, section.question_type)
        for question, section in tree.questions()
    }
    # One row per question: a repeated question id keeps its last entry
    latest = {answer.question_id: answer for answer in answers}
    sheet = score_attempt(keys, latest.values())

    rows = store.answers_by_question(attempt_id)
    for scored in sheet.answers:
        row = rows.get(scored.question_id)
        if row is None:
            row = Answer(attempt_id=attempt_id, question_id=scored.question_id)
        row.selected_option = scored.selected_option
        row.integer_answer = scored.integer_answer
        row.status = scored.status
        row.is_correct = scored.is_correct
        row.marks_awarded = scored.marks_awarded
        store.add_answer(row)

    attempt.is_completed = True
    attempt.end_time = finished_at
    attempt.total_marks = sheet.total_marks
    store.session.add(attempt)
    # A single live session per test: completing the attempt ends it
    store.set_test_live(attempt.test_id, False)
    view = _build_view(store, attempt)
    candidate_name, test_id = attempt.candidate_name, attempt.test_id
    store.commit()

    logger.info(
        "Attempt %s submitted by %s with %s marks; test %s is no longer live",
        attempt_id,
        candidate_name,
        sheet.total_marks,
        test_id,
    )
    return view


def persisted_submission(store: AttemptStore, attempt_id: str) -> List[SubmittedAnswer]:
    """The attempt's stored answer rows, shaped as a submission payload."""
    return [
        SubmittedAnswer(
            question_id=row.question_id,
            selected_option=row.selected_option,
            integer_answer=row.integer_answer,
            status=row.status,
        )
        for row in store.list_answers(attempt_id)
    ]


def record_warning(
    store: AttemptStore, attempt_id: str, warning_limit: int = DEFAULT_WARNING_LIMIT
) -> WarningOutcome:
    """Count one proctoring violation; at ``warning_limit`` force a submit.

    The forced submit goes through ``submit_attempt`` with the persisted
    answers, so it scores exactly like an explicit submission.
    """
    attempt = store.get_attempt(attempt_id)
    if attempt is None:
        raise AttemptNotFound(attempt_id)
    if attempt.is_completed or not store.increment_warning(attempt_id):
        raise AlreadyCompleted(attempt_id)

    store.refresh(attempt)
    count = attempt.warning_count
    if count < warning_limit:
        store.commit()
        return WarningOutcome(warning_count=count)

    logger.info("Attempt %s reached %s warnings; submitting automatically", attempt_id, count)
    try:
        view = submit_attempt(store, attempt_id, persisted_submission(store, attempt_id))
    except AlreadyCompleted:
        # Someone else completed it first: that submission is the only one
        store.session.rollback()
        return WarningOutcome(warning_count=count, submitted=get_attempt_view(store, attempt_id))
    return WarningOutcome(warning_count=view.attempt.warning_count, submitted=view)
