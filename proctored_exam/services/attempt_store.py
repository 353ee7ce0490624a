"""Persistence boundary for tests (read-only) and attempts/answers (read-write)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from proctored_exam.errors import AttemptInProgress
from proctored_exam.models import (
    Answer,
    AnswerStatus,
    Question,
    Section,
    Test,
    TestAttempt,
)


@dataclass
class SectionTree:
    section: Section
    questions: List[Question] = field(default_factory=list)


@dataclass
class TestTree:
    __test__ = False

    test: Test
    sections: List[SectionTree] = field(default_factory=list)

    def questions(self) -> List[Tuple[Question, Section]]:
        return [(q, node.section) for node in self.sections for q in node.questions]


class AttemptStore:
    """Queries and writes used by the attempt engine, bound to one session.

    Callers own the transaction: nothing here commits except ``commit()``.
    """

    def __init__(self, session: Session):
        self.session = session

    def commit(self) -> None:
        self.session.commit()

    def refresh(self, instance) -> None:
        self.session.refresh(instance)

    # ===================== TEST CONTENT =====================

    def get_test(self, test_id: str) -> Optional[Test]:
        return self.session.get(Test, test_id)

    def load_test_tree(self, test: Test) -> TestTree:
        """Sections ordered by ``order``, questions by ``question_number``."""
        sections = self.session.exec(
            select(Section).where(Section.test_id == test.id).order_by(Section.order)
        ).all()
        tree = TestTree(test=test, sections=[SectionTree(section=s) for s in sections])
        if not sections:
            return tree

        by_section = {node.section.id: node for node in tree.sections}
        questions = self.session.exec(
            select(Question)
            .where(Question.section_id.in_(list(by_section)))
            .order_by(Question.question_number)
        ).all()
        for question in questions:
            by_section[question.section_id].questions.append(question)
        return tree

    def set_test_live(self, test_id: str, is_live: bool) -> None:
        self.session.exec(
            update(Test)
            .where(Test.id == test_id)
            .values(is_live=is_live)
            .execution_options(synchronize_session="evaluate")
        )

    # ===================== ATTEMPTS =====================

    def get_attempt(self, attempt_id: str) -> Optional[TestAttempt]:
        return self.session.get(TestAttempt, attempt_id)

    def find_attempts(self, test_id: str, candidate_name: str) -> List[TestAttempt]:
        return self.session.exec(
            select(TestAttempt).where(
                TestAttempt.test_id == test_id,
                TestAttempt.candidate_name == candidate_name,
            )
        ).all()

    def create_attempt(self, attempt: TestAttempt, question_ids: Iterable[str]) -> TestAttempt:
        """Insert an attempt and one NOT_VISITED answer per question."""
        self.session.add(attempt)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            raise AttemptInProgress()

        self.session.add_all(
            [
                Answer(attempt_id=attempt.id, question_id=qid, status=AnswerStatus.NOT_VISITED)
                for qid in question_ids
            ]
        )
        self.session.flush()
        return attempt

    def delete_attempt(self, attempt_id: str) -> None:
        """Delete an attempt together with its answers."""
        self.session.exec(delete(Answer).where(Answer.attempt_id == attempt_id))
        self.session.exec(delete(TestAttempt).where(TestAttempt.id == attempt_id))

    def claim_completion(self, attempt_id: str, end_time: datetime) -> bool:
        """Atomically flip an incomplete attempt to completed.

        Returns False when the attempt was already completed (or missing),
        which makes submission idempotent per attempt.
        """
        result = self.session.exec(
            update(TestAttempt)
            .where(TestAttempt.id == attempt_id, TestAttempt.is_completed == False)  # noqa: E712
            .values(is_completed=True, end_time=end_time)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment_warning(self, attempt_id: str) -> bool:
        """Add one warning to an incomplete attempt; False if nothing matched."""
        result = self.session.exec(
            update(TestAttempt)
            .where(TestAttempt.id == attempt_id, TestAttempt.is_completed == False)  # noqa: E712
            .values(warning_count=TestAttempt.warning_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_pending_resume(self) -> List[Tuple[TestAttempt, Test]]:
        rows = self.session.exec(
            select(TestAttempt, Test)
            .join(Test, Test.id == TestAttempt.test_id)
            .where(
                TestAttempt.needs_resume == True,  # noqa: E712
                TestAttempt.can_resume == False,  # noqa: E712
                TestAttempt.is_completed == False,  # noqa: E712
            )
            .order_by(TestAttempt.resume_requested_at.desc())
        ).all()
        return list(rows)

    def list_completed_attempts(self, candidate_name: str) -> List[TestAttempt]:
        return self.session.exec(
            select(TestAttempt)
            .where(
                TestAttempt.candidate_name == candidate_name,
                TestAttempt.is_completed == True,  # noqa: E712
            )
            .order_by(TestAttempt.end_time.desc())
        ).all()

    # ===================== ANSWERS =====================

    def list_answers(self, attempt_id: str) -> List[Answer]:
        return self.session.exec(select(Answer).where(Answer.attempt_id == attempt_id)).all()

    def answers_by_question(self, attempt_id: str) -> Dict[str, Answer]:
        return {a.question_id: a for a in self.list_answers(attempt_id)}

    def get_answer(self, attempt_id: str, question_id: str) -> Optional[Answer]:
        return self.session.exec(
            select(Answer).where(
                Answer.attempt_id == attempt_id, Answer.question_id == question_id
            )
        ).first()

    def add_answer(self, answer: Answer) -> Answer:
        self.session.add(answer)
        return answer

    def overwrite_answer_if_open(self, attempt_id: str, question_id: str, **values) -> bool:
        """Overwrite answer fields only while the owning attempt is incomplete.

        With no ``values`` nothing is written; the return value still says
        whether an open row exists.
        """
        still_open = select(TestAttempt.id).where(
            TestAttempt.id == attempt_id,
            TestAttempt.is_completed == False,  # noqa: E712
        )
        if not values:
            row = self.session.exec(
                select(Answer.id).where(
                    Answer.attempt_id == attempt_id,
                    Answer.question_id == question_id,
                    Answer.attempt_id.in_(still_open),
                )
            ).first()
            return row is not None
        result = self.session.exec(
            update(Answer)
            .where(
                Answer.attempt_id == attempt_id,
                Answer.question_id == question_id,
                Answer.attempt_id.in_(still_open),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def add_time(self, attempt_id: str, question_id: str, seconds: int, seen_at: datetime) -> None:
        """Increment stored time in SQL so concurrent syncs do not lose time."""
        self.session.exec(
            update(Answer)
            .where(Answer.attempt_id == attempt_id, Answer.question_id == question_id)
            .values(time_spent=Answer.time_spent + seconds, last_visit_time=seen_at)
            .execution_options(synchronize_session=False)
        )
