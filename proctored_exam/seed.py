"""Sample test content for local runs and the test-suite."""

from typing import Iterable, Optional, Sequence

from sqlmodel import Session

from proctored_exam.models import Question, QuestionType, Section, Test

SAMPLE_MCQ_KEYS = ("B", "A", "D")
SAMPLE_INTEGER_KEYS = (42, 7)


def create_test(
    session: Session,
    name: str,
    sections: Sequence[dict],
    duration: int = 180,
    is_live: bool = True,
    is_draft: bool = False,
) -> Test:
    """Insert a test with its sections and questions.

    ``sections`` items look like ``{"name", "question_type", "questions"}``
    where each question is a dict of Question fields (``marks`` defaults
    to 4, ``negative_marks`` to -1). Question numbers follow list order.
    ``total_marks`` is the sum of question marks.
    """
    test = Test(name=name, duration=duration, is_live=is_live, is_draft=is_draft)
    session.add(test)
    session.flush()

    total_marks = 0
    for order, section_data in enumerate(sections):
        section = Section(
            test_id=test.id,
            name=section_data["name"],
            question_type=QuestionType(section_data["question_type"]),
            order=order,
        )
        session.add(section)
        session.flush()
        for number, fields in enumerate(section_data.get("questions", []), start=1):
            question = Question(section_id=section.id, question_number=number, **fields)
            total_marks += question.marks
            session.add(question)

    test.total_marks = total_marks
    session.add(test)
    session.commit()
    session.refresh(test)
    return test


def _mcq(keys: Iterable[str]) -> list:
    return [{"correct_option": key} for key in keys]


def _integer(keys: Iterable[int]) -> list:
    return [{"correct_integer": key} for key in keys]


def seed_sample_test(session: Session, name: Optional[str] = None) -> Test:
    """A live two-section test: MCQ then INTEGER, 4 / -1 marking."""
    return create_test(
        session,
        name or "Sample Mock Test",
        [
            {"name": "Physics", "question_type": "MCQ", "questions": _mcq(SAMPLE_MCQ_KEYS)},
            {
                "name": "Mathematics",
                "question_type": "INTEGER",
                "questions": _integer(SAMPLE_INTEGER_KEYS),
            },
        ],
    )
