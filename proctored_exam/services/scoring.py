"""Automatic scoring of submitted answers under negative marking.

Pure computation: no session, no clock. Each scorable answer ends up in
exactly one of three outcomes:

- correct      -> ``is_correct=True``,  ``marks_awarded=question.marks``
- incorrect    -> ``is_correct=False``, ``marks_awarded=question.negative_marks``
- unattempted  -> ``is_correct=None``,  ``marks_awarded=0``

An answer whose status is ANSWERED / MARKED_FOR_REVIEW but which carries
no value at all is still unattempted.
"""

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from proctored_exam.models import SCORABLE_STATUSES, AnswerStatus, Question, QuestionType


@dataclass(frozen=True)
class AnswerKey:
    """What scoring needs to know about one question."""

    question_id: str
    correct_option: Optional[str]
    correct_integer: Optional[int]
    marks: int
    negative_marks: int
    question_type: Optional[QuestionType] = None

    @classmethod
    def from_question(cls, question: Question, question_type: Optional[QuestionType] = None) -> "AnswerKey":
        return cls(
            question_id=question.id,
            correct_option=question.correct_option,
            correct_integer=question.correct_integer,
            marks=question.marks,
            negative_marks=question.negative_marks,
            question_type=question_type,
        )


@dataclass(frozen=True)
class SubmittedAnswer:
    question_id: str
    selected_option: Optional[str] = None
    integer_answer: Optional[int] = None
    status: AnswerStatus = AnswerStatus.NOT_VISITED


@dataclass(frozen=True)
class ScoredAnswer:
    question_id: str
    selected_option: Optional[str]
    integer_answer: Optional[int]
    status: AnswerStatus
    is_correct: Optional[bool]
    marks_awarded: int


@dataclass(frozen=True)
class ScoreSheet:
    answers: List[ScoredAnswer]
    total_marks: int


def _matches_option(key: AnswerKey, answer: SubmittedAnswer) -> bool:
    if key.question_type == QuestionType.INTEGER:
        return False
    return bool(key.correct_option) and answer.selected_option == key.correct_option


def _matches_integer(key: AnswerKey, answer: SubmittedAnswer) -> bool:
    if key.question_type == QuestionType.MCQ:
        return False
    return key.correct_integer is not None and answer.integer_answer == key.correct_integer


def _has_value(answer: SubmittedAnswer) -> bool:
    return bool(answer.selected_option) or answer.integer_answer is not None


def score_answer(key: AnswerKey, answer: SubmittedAnswer) -> ScoredAnswer:
    is_correct: Optional[bool] = None
    marks_awarded = 0

    if answer.status in SCORABLE_STATUSES:
        if _matches_option(key, answer) or _matches_integer(key, answer):
            is_correct = True
            marks_awarded = key.marks
        elif _has_value(answer):
            is_correct = False
            marks_awarded = key.negative_marks

    return ScoredAnswer(
        question_id=answer.question_id,
        selected_option=answer.selected_option,
        integer_answer=answer.integer_answer,
        status=answer.status,
        is_correct=is_correct,
        marks_awarded=marks_awarded,
    )


def score_attempt(keys: Mapping[str, AnswerKey], answers: Iterable[SubmittedAnswer]) -> ScoreSheet:
    """Score every submitted answer that refers to a known question.

    Answers for unknown questions are skipped. The total may be negative.
    """
    scored = [
        score_answer(keys[answer.question_id], answer)
        for answer in answers
        if answer.question_id in keys
    ]
    return ScoreSheet(answers=scored, total_marks=sum(a.marks_awarded for a in scored))
