from datetime import timedelta

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from proctored_exam import models
from proctored_exam.config import Settings
from proctored_exam.database import Database, classify_error
from proctored_exam.errors import AttemptNotFound, StoreError, TransientStoreError
from proctored_exam.services import attempt_lifecycle, time_tracker
from proctored_exam.services.attempt_store import AttemptStore


def operational_error():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection"))


def test_connectivity_errors_are_transient():
    error = classify_error(operational_error(), retry_after=12)
    assert isinstance(error, TransientStoreError)
    assert error.status_code == 503
    assert error.to_dict()["retryAfter"] == 12

    invalidated = DBAPIError("SELECT 1", {}, Exception("gone"), connection_invalidated=True)
    assert isinstance(classify_error(invalidated), TransientStoreError)


def test_other_errors_are_permanent():
    error = classify_error(IntegrityError("INSERT", {}, Exception("duplicate key")))
    assert type(error) is StoreError
    assert error.status_code == 500
    assert error.code == "DATABASE_ERROR"


def test_run_retries_transient_failures_until_success(database):
    calls = []

    def work(store):
        calls.append(store)
        if len(calls) < 3:
            raise operational_error()
        return "done"

    assert database.run(work) == "done"
    assert len(calls) == 3
    # Every try gets its own session
    assert len({id(store.session) for store in calls}) == 3


def test_run_gives_up_after_the_attempt_budget(database):
    calls = []

    def work(store):
        calls.append(1)
        raise operational_error()

    with pytest.raises(TransientStoreError):
        database.run(work, attempts=2)
    assert len(calls) == 2


def test_permanent_and_domain_errors_are_not_retried(database):
    calls = []

    def permanent(store):
        calls.append(1)
        raise IntegrityError("INSERT", {}, Exception("duplicate key"))

    with pytest.raises(StoreError) as excinfo:
        database.run(permanent)
    assert not isinstance(excinfo.value, TransientStoreError)
    assert len(calls) == 1

    def missing(store):
        calls.append(1)
        raise AttemptNotFound("missing")

    with pytest.raises(AttemptNotFound):
        database.run(missing)
    assert len(calls) == 2


def test_ping_reports_latency(database):
    assert database.ping() >= 0


def test_from_settings_uses_retry_budget():
    settings = Settings(DATABASE_URL="sqlite://", STORE_RETRY_ATTEMPTS=5, RETRY_AFTER_SECONDS=7)
    db = Database.from_settings(settings)
    try:
        assert db.retry_attempts == 5
        assert db.retry_after == 7
        assert db.url == "sqlite://"
    finally:
        db.dispose()


# ===================== RETRIED UNITS OF WORK =====================


def fail_first_call(method):
    """Wrap a store method so its first call hits a dropped connection."""
    calls = []

    def wrapper(self, *args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise operational_error()
        return method(self, *args, **kwargs)

    return wrapper


def start_attempt(database, sample_test):
    return database.run(
        lambda store: attempt_lifecycle.start_attempt(store, sample_test["test_id"], "Asha Rao").attempt.id
    )


def stored_time(database, attempt_id, question_id):
    return database.run(lambda store: store.get_answer(attempt_id, question_id).time_spent)


def test_retried_time_update_is_counted_once(database, sample_test, monkeypatch):
    attempt_id = start_attempt(database, sample_test)
    question_id = sample_test["mcq"][0]
    monkeypatch.setattr(AttemptStore, "refresh", fail_first_call(AttemptStore.refresh))

    recorded = database.run(
        lambda store: time_tracker.record_question_time(store, attempt_id, question_id, 10)
    )

    assert recorded.time_spent == 10
    assert stored_time(database, attempt_id, question_id) == 10


def test_failed_commit_is_retried_without_double_counting(database, sample_test, monkeypatch):
    attempt_id = start_attempt(database, sample_test)
    question_id = sample_test["mcq"][0]
    monkeypatch.setattr(AttemptStore, "commit", fail_first_call(AttemptStore.commit))

    recorded = database.run(
        lambda store: time_tracker.record_question_time(store, attempt_id, question_id, 10)
    )

    assert recorded.time_spent == 10
    assert stored_time(database, attempt_id, question_id) == 10


def test_retried_start_leaves_exactly_one_attempt(database, sample_test, monkeypatch):
    monkeypatch.setattr(AttemptStore, "commit", fail_first_call(AttemptStore.commit))

    attempt_id = start_attempt(database, sample_test)

    attempts = database.run(
        lambda store: [a.id for a in store.find_attempts(sample_test["test_id"], "Asha Rao")]
    )
    assert attempts == [attempt_id]


def test_results_are_readable_after_the_unit_of_work(database, sample_test):
    view = database.run(
        lambda store: attempt_lifecycle.start_attempt(store, sample_test["test_id"], "Asha Rao")
    )
    # Loaded before the commit and not expired by it
    assert view.attempt.candidate_name == "Asha Rao"
    assert len(view.answers) == 5
    assert view.tree.test.is_live is True


# ===================== TIMESTAMPS =====================


def test_timestamps_are_timezone_aware(database, sample_test):
    view = database.run(
        lambda store: attempt_lifecycle.start_attempt(store, sample_test["test_id"], "Asha Rao")
    )
    assert view.attempt.start_time.tzinfo is not None
    assert view.attempt.start_time.utcoffset() == timedelta(0)

    for column in ("start_time", "end_time", "resume_requested_at"):
        assert models.TestAttempt.__table__.c[column].type.timezone is True
    for column in ("first_visit_time", "last_visit_time"):
        assert models.Answer.__table__.c[column].type.timezone is True
