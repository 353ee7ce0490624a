"""Resume-permission handshake between candidates and examiners."""

import logging
from typing import List, Tuple

from proctored_exam.errors import AlreadyCompleted, AttemptNotFound
from proctored_exam.models import Test, TestAttempt
from proctored_exam.services.attempt_store import AttemptStore
from proctored_exam.utils import utcnow

logger = logging.getLogger(__name__)


def _open_attempt(store: AttemptStore, attempt_id: str) -> TestAttempt:
    attempt = store.get_attempt(attempt_id)
    if attempt is None:
        raise AttemptNotFound(attempt_id)
    if attempt.is_completed:
        raise AlreadyCompleted(attempt_id)
    return attempt


def request_resume(store: AttemptStore, attempt_id: str) -> TestAttempt:
    """Mark an attempt as needing examiner approval before it can restart.

    Sent by the client when the candidate leaves the exam window.
    """
    attempt = _open_attempt(store, attempt_id)
    attempt.needs_resume = True
    attempt.resume_requested_at = utcnow()
    store.session.add(attempt)
    candidate_name = attempt.candidate_name
    store.commit()
    logger.info("Resume requested for attempt %s by %s", attempt_id, candidate_name)
    return attempt


def allow_resume(store: AttemptStore, attempt_id: str) -> TestAttempt:
    """Examiner grants permission; the next start for the slot is accepted."""
    attempt = _open_attempt(store, attempt_id)
    attempt.can_resume = True
    attempt.needs_resume = False
    store.session.add(attempt)
    store.commit()
    logger.info("Resume allowed for attempt %s", attempt_id)
    return attempt


def list_pending(store: AttemptStore) -> List[Tuple[TestAttempt, Test]]:
    """Incomplete attempts waiting on a decision, newest request first."""
    return store.list_pending_resume()


def is_resume_blocked(attempt: TestAttempt) -> bool:
    return attempt.needs_resume and not attempt.can_resume
