"""SQLModel models for tests, attempts and answers."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from proctored_exam.utils import utcnow


def new_id() -> str:
    return uuid.uuid4().hex


class QuestionType(str, Enum):
    MCQ = "MCQ"
    INTEGER = "INTEGER"


class AnswerStatus(str, Enum):
    NOT_VISITED = "NOT_VISITED"
    NOT_ANSWERED = "NOT_ANSWERED"
    ANSWERED = "ANSWERED"
    MARKED_FOR_REVIEW = "MARKED_FOR_REVIEW"


# Only these statuses are considered for scoring
SCORABLE_STATUSES = frozenset({AnswerStatus.ANSWERED, AnswerStatus.MARKED_FOR_REVIEW})


# ===================== TEST CONTENT (read-only here) =====================


class Test(SQLModel, table=True):
    """A published examination. Authored elsewhere; only ``is_live`` is written here."""

    __test__ = False

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    duration: int  # minutes
    total_marks: int = Field(default=0)
    is_live: bool = Field(default=False)
    is_draft: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Section(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("test_id", "order", name="uq_section_test_order"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    test_id: str = Field(foreign_key="test.id", index=True)
    name: str
    question_type: QuestionType
    order: int


class Question(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("section_id", "question_number", name="uq_question_section_number"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    section_id: str = Field(foreign_key="section.id", index=True)
    question_number: int
    # Opaque references owned by the image storage service
    question_image: Optional[str] = None
    solution_image: Optional[str] = None
    # Exactly one is meaningful, chosen by the section's question_type
    correct_option: Optional[str] = None
    correct_integer: Optional[int] = None
    marks: int = Field(default=4)
    negative_marks: int = Field(default=-1)


# ===================== ATTEMPTS =====================


class TestAttempt(SQLModel, table=True):
    """One candidate's timed run through a test."""

    __test__ = False
    __table_args__ = (
        # At most one incomplete attempt per (test, candidate)
        Index(
            "uq_incomplete_attempt",
            "test_id",
            "candidate_name",
            unique=True,
            sqlite_where=text("is_completed = 0"),
            postgresql_where=text("NOT is_completed"),
        ),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    test_id: str = Field(foreign_key="test.id", index=True)
    candidate_name: str = Field(index=True)
    candidate_image: Optional[str] = None
    start_time: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    end_time: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    total_marks: int = Field(default=0)
    is_completed: bool = Field(default=False)
    warning_count: int = Field(default=0)
    # Resume handshake
    needs_resume: bool = Field(default=False)
    can_resume: bool = Field(default=False)
    resume_requested_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


class Answer(SQLModel, table=True):
    """State of one question within one attempt; the unit of idempotent upsert."""

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    attempt_id: str = Field(foreign_key="testattempt.id", index=True)
    question_id: str = Field(foreign_key="question.id")
    selected_option: Optional[str] = None
    integer_answer: Optional[int] = None
    status: AnswerStatus = Field(default=AnswerStatus.NOT_VISITED)
    # None = unattempted
    is_correct: Optional[bool] = None
    marks_awarded: int = Field(default=0)
    # Time tracking
    time_spent: int = Field(default=0)  # seconds
    visit_count: int = Field(default=0)
    first_visit_time: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    last_visit_time: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
