import pytest
from fastapi.testclient import TestClient

from proctored_exam.config import Settings
from proctored_exam.database import Database
from proctored_exam.main import create_app
from proctored_exam.seed import seed_sample_test
from proctored_exam.services.attempt_store import AttemptStore

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================


@pytest.fixture
def database():
    """A fresh in-memory database per test (StaticPool shares the connection)."""
    db = Database("sqlite://", retry_base_delay=0, retry_max_delay=0)
    db.create_all()
    yield db
    db.drop_all()
    db.dispose()


@pytest.fixture
def store(database):
    """An AttemptStore bound to its own session, for calling services directly."""
    with database.session() as session:
        yield AttemptStore(session)


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        WARNING_LIMIT=5,
        STORE_RETRY_BASE_DELAY=0,
        STORE_RETRY_MAX_DELAY=0,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def client(settings, database):
    app = create_app(settings, database=database)
    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


@pytest.fixture
def sample_test(database):
    """Seed the sample test and return plain ids (no ORM objects leak out)."""
    with database.session() as session:
        test = seed_sample_test(session)
        tree = AttemptStore(session).load_test_tree(test)
        return {
            "test_id": test.id,
            "total_marks": test.total_marks,
            "mcq": [q.id for q in tree.sections[0].questions],
            "integer": [q.id for q in tree.sections[1].questions],
        }


@pytest.fixture
def start_payload(sample_test):
    return {"testId": sample_test["test_id"], "candidateName": "Asha Rao"}
