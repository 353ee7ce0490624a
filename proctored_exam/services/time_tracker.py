"""Per-question time-on-question and visit tracking."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from proctored_exam.errors import AnswerNotFound, AttemptNotFound, InvalidRequest
from proctored_exam.models import Answer, TestAttempt
from proctored_exam.services.attempt_store import AttemptStore
from proctored_exam.utils import is_valid_seconds, round_half_up, utcnow

logger = logging.getLogger(__name__)

VISIT_ACTION = "visit"


@dataclass
class QuestionTime:
    time_spent: int
    visit_count: int


def _seconds(value) -> int:
    if not is_valid_seconds(value):
        raise InvalidRequest("Invalid time tracking data")
    return round_half_up(value)


def _require_attempt(store: AttemptStore, attempt_id: str) -> TestAttempt:
    attempt = store.get_attempt(attempt_id)
    if attempt is None:
        raise AttemptNotFound(attempt_id)
    return attempt


def record_question_time(
    store: AttemptStore,
    attempt_id: str,
    question_id: str,
    time_spent,
    action: Optional[str] = None,
) -> QuestionTime:
    """Add ``time_spent`` seconds to one question.

    The first call for a question counts as its first visit. After that,
    only calls with ``action="visit"`` increase ``visit_count``;
    continuous updates just accumulate time.
    """
    if not question_id:
        raise InvalidRequest("Invalid time tracking data")
    seconds = _seconds(time_spent)
    _require_attempt(store, attempt_id)

    answer = store.get_answer(attempt_id, question_id)
    if answer is None:
        raise AnswerNotFound(attempt_id, question_id)

    now = utcnow()
    answer.time_spent += seconds
    answer.last_visit_time = now
    if answer.first_visit_time is None:
        answer.first_visit_time = now
        answer.visit_count = 1
    elif action == VISIT_ACTION:
        answer.visit_count += 1

    store.add_answer(answer)
    recorded = QuestionTime(time_spent=answer.time_spent, visit_count=answer.visit_count)
    store.commit()
    return recorded


def sync_question_times(store: AttemptStore, attempt_id: str, question_times: Mapping[str, object]) -> int:
    """Apply a map of ``question_id -> seconds`` deltas; returns rows touched.

    Zero deltas are ignored. A negative or non-numeric value rejects the
    whole batch before anything is written.
    """
    if not isinstance(question_times, Mapping):
        raise InvalidRequest("Invalid time data format")
    deltas: Dict[str, int] = {}
    for question_id, value in question_times.items():
        seconds = _seconds(value)
        if seconds > 0:
            deltas[question_id] = seconds

    attempt = _require_attempt(store, attempt_id)
    if not deltas:
        return 0

    existing = store.answers_by_question(attempt_id)
    known_questions = None
    now = utcnow()
    updated = 0
    for question_id, seconds in deltas.items():
        answer = existing.get(question_id)
        if answer is not None:
            store.add_time(attempt_id, question_id, seconds, now)
            updated += 1
            continue

        if known_questions is None:
            tree = store.load_test_tree(store.get_test(attempt.test_id))
            known_questions = {q.id for q, _ in tree.questions()}
        if question_id not in known_questions:
            logger.warning(
                "Ignoring time for question %s outside the test of attempt %s",
                question_id,
                attempt_id,
            )
            continue
        store.add_answer(
            Answer(
                attempt_id=attempt_id,
                question_id=question_id,
                time_spent=seconds,
                visit_count=1,
                first_visit_time=now,
                last_visit_time=now,
            )
        )
        updated += 1

    store.commit()
    return updated


def time_analytics(store: AttemptStore, attempt_id: str) -> dict:
    """Per-section and per-question breakdown of stored time data."""
    attempt = _require_attempt(store, attempt_id)
    tree = store.load_test_tree(store.get_test(attempt.test_id))
    answers = store.answers_by_question(attempt_id)

    section_rows: List[dict] = []
    question_rows: List[dict] = []
    for node in tree.sections:
        section_answers = [answers[q.id] for q in node.questions if q.id in answers]
        total_time = sum(a.time_spent for a in section_answers)
        attempted = sum(1 for a in section_answers if a.time_spent > 0)
        section_rows.append(
            {
                "sectionId": node.section.id,
                "sectionName": node.section.name,
                "totalTime": total_time,
                "totalVisits": sum(a.visit_count for a in section_answers),
                "questionsAttempted": attempted,
                "totalQuestions": len(node.questions),
                "averageTimePerQuestion": round_half_up(total_time / attempted) if attempted else 0,
            }
        )
        for question in node.questions:
            answer = answers.get(question.id)
            if answer is None:
                continue
            question_rows.append(
                {
                    "questionId": question.id,
                    "questionNumber": question.question_number,
                    "sectionName": node.section.name,
                    "timeSpent": answer.time_spent,
                    "visitCount": answer.visit_count,
                    "firstVisitTime": answer.first_visit_time,
                    "lastVisitTime": answer.last_visit_time,
                    "isCorrect": answer.is_correct,
                    "marksAwarded": answer.marks_awarded,
                }
            )

    return {
        "attemptId": attempt.id,
        "candidateName": attempt.candidate_name,
        "testName": tree.test.name,
        "totalTestTime": sum(a.time_spent for a in answers.values()),
        "totalVisits": sum(a.visit_count for a in answers.values()),
        "sectionAnalytics": section_rows,
        "questionAnalytics": question_rows,
    }
