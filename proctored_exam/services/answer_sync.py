"""Periodic batch upsert of in-progress answer state (no scoring)."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from proctored_exam.errors import AlreadyCompleted, AnswerNotFound, AttemptNotFound
from proctored_exam.models import AnswerStatus
from proctored_exam.services.attempt_store import AttemptStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerUpdate:
    question_id: str
    selected_option: Optional[str] = None
    integer_answer: Optional[int] = None
    status: Optional[AnswerStatus] = None
    # Fields the client left out; their stored values are kept
    omitted: FrozenSet[str] = frozenset()

    def changes(self) -> Dict[str, Any]:
        """Column values to write. A null status is never written."""
        values = {
            "selected_option": self.selected_option,
            "integer_answer": self.integer_answer,
        }
        if self.status is not None:
            values["status"] = self.status
        return {k: v for k, v in values.items() if k not in self.omitted}


@dataclass
class SyncFailure:
    question_id: str
    code: str


@dataclass
class SyncResult:
    synced: int = 0
    failed: List[SyncFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


def sync_answers(store: AttemptStore, attempt_id: str, updates: Iterable[AnswerUpdate]) -> SyncResult:
    """Overwrite answer fields for each entry, keyed by (attempt, question).

    Entries target disjoint rows, so order within the batch does not
    matter and replaying the same batch leaves the same state. A missing
    row fails only that entry.
    """
    attempt = store.get_attempt(attempt_id)
    if attempt is None:
        raise AttemptNotFound(attempt_id)
    if attempt.is_completed:
        raise AlreadyCompleted(attempt_id)

    result = SyncResult()
    for update in updates:
        written = store.overwrite_answer_if_open(attempt_id, update.question_id, **update.changes())
        if written:
            result.synced += 1
            continue
        failure = AnswerNotFound(attempt_id, update.question_id)
        logger.warning(
            "Sync for attempt %s skipped question %s: %s",
            attempt_id,
            update.question_id,
            failure.code,
        )
        result.failed.append(SyncFailure(question_id=update.question_id, code=failure.code))

    store.commit()
    return result
