"""Request and response bodies for the attempts API (camelCase on the wire)."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from proctored_exam.models import AnswerStatus, Question, QuestionType, Test
from proctored_exam.services.answer_sync import AnswerUpdate, SyncResult
from proctored_exam.services.attempt_lifecycle import AttemptView
from proctored_exam.services.scoring import SubmittedAnswer

SYNCED_ANSWER_FIELDS = frozenset({"selected_option", "integer_answer", "status"})


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# ===================== REQUESTS =====================


class StartAttemptIn(CamelModel):
    test_id: str
    candidate_name: str
    candidate_image: Optional[str] = None


class AnswerIn(CamelModel):
    question_id: str
    selected_option: Optional[str] = None
    integer_answer: Optional[int] = None
    status: Optional[AnswerStatus] = None

    @field_validator("integer_answer", mode="before")
    @classmethod
    def blank_integer_is_none(cls, value):
        """Integer inputs arrive as text from the client; blank means no answer."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_update(self) -> AnswerUpdate:
        """Fields missing from the request body keep their stored values."""
        return AnswerUpdate(
            question_id=self.question_id,
            selected_option=self.selected_option,
            integer_answer=self.integer_answer,
            status=self.status,
            omitted=frozenset(SYNCED_ANSWER_FIELDS - self.model_fields_set),
        )

    def to_submitted(self) -> SubmittedAnswer:
        return SubmittedAnswer(
            question_id=self.question_id,
            selected_option=self.selected_option,
            integer_answer=self.integer_answer,
            status=self.status or AnswerStatus.NOT_VISITED,
        )


class SyncAnswersIn(CamelModel):
    attempt_id: str
    answers: List[AnswerIn] = Field(default_factory=list)


class SubmitAttemptIn(CamelModel):
    attempt_id: str
    answers: List[AnswerIn] = Field(default_factory=list)


class AttemptRefIn(CamelModel):
    attempt_id: str


class QuestionTimeIn(CamelModel):
    question_id: str
    # Checked by the time tracker: numbers only, never negative
    time_spent: Any = None
    action: Optional[str] = None


class SyncTimesIn(CamelModel):
    question_times: Dict[str, Any]


# ===================== RESPONSES =====================


class QuestionOut(CamelModel):
    id: str
    section_id: str
    question_number: int
    question_image: Optional[str] = None
    marks: int
    negative_marks: int
    # Answer key, only revealed once the attempt is completed
    solution_image: Optional[str] = None
    correct_option: Optional[str] = None
    correct_integer: Optional[int] = None

    @classmethod
    def from_question(cls, question: Question, reveal_key: bool) -> "QuestionOut":
        out = cls.model_validate(question)
        if not reveal_key:
            out.solution_image = None
            out.correct_option = None
            out.correct_integer = None
        return out


class SectionOut(CamelModel):
    id: str
    name: str
    question_type: QuestionType
    order: int
    questions: List[QuestionOut] = Field(default_factory=list)


class TestSummaryOut(CamelModel):
    __test__ = False

    id: str
    name: str
    duration: int
    total_marks: int
    is_live: bool
    is_draft: bool

    @classmethod
    def from_test(cls, test: Test) -> "TestSummaryOut":
        return cls.model_validate(test)


class TestOut(TestSummaryOut):
    sections: List[SectionOut] = Field(default_factory=list)


class AnswerOut(CamelModel):
    id: str
    question_id: str
    selected_option: Optional[str] = None
    integer_answer: Optional[int] = None
    status: AnswerStatus
    is_correct: Optional[bool] = None
    marks_awarded: int
    time_spent: int
    visit_count: int
    first_visit_time: Optional[datetime] = None
    last_visit_time: Optional[datetime] = None
    question: Optional[QuestionOut] = None


class AttemptOut(CamelModel):
    id: str
    test_id: str
    candidate_name: str
    candidate_image: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    total_marks: int
    is_completed: bool
    warning_count: int
    needs_resume: bool
    can_resume: bool
    resume_requested_at: Optional[datetime] = None


class AttemptDetailOut(AttemptOut):
    test: TestOut
    answers: List[AnswerOut] = Field(default_factory=list)

    @classmethod
    def from_view(cls, view: AttemptView) -> "AttemptDetailOut":
        reveal = view.attempt.is_completed
        questions = {}
        sections = []
        for node in view.tree.sections:
            section_questions = [QuestionOut.from_question(q, reveal) for q in node.questions]
            questions.update({q.id: q for q in section_questions})
            section = SectionOut.model_validate(node.section)
            section.questions = section_questions
            sections.append(section)

        test = TestOut.model_validate(view.tree.test)
        test.sections = sections

        answers = []
        for row in view.answers:
            answer = AnswerOut.model_validate(row)
            answer.question = questions.get(row.question_id)
            answers.append(answer)

        base = AttemptOut.model_validate(view.attempt)
        return cls(**base.model_dump(), test=test, answers=answers)


class PendingResumeOut(AttemptOut):
    test: TestSummaryOut


class SyncFailureOut(CamelModel):
    question_id: str
    code: str


class SyncAnswersOut(CamelModel):
    success: bool
    synced: int
    failed: List[SyncFailureOut] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncAnswersOut":
        return cls(
            success=result.success,
            synced=result.synced,
            failed=[SyncFailureOut.model_validate(f) for f in result.failed],
        )


class WarningOut(CamelModel):
    warning_count: int


class QuestionTimeOut(CamelModel):
    success: bool = True
    time_spent: int
    visit_count: int


class SyncTimesOut(CamelModel):
    success: bool = True
    updated_questions: int


class ResumeOut(CamelModel):
    success: bool = True
    message: str
