"""Database handle, unit-of-work runner and failure classification."""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from fastapi import Request
from sqlalchemy import exc as sa_exc
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, text
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from proctored_exam import models  # noqa: F401  (populate metadata)
from proctored_exam.errors import StoreError, TransientStoreError
from proctored_exam.services.attempt_store import AttemptStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.DisconnectionError,
    sa_exc.TimeoutError,
)


def classify_error(error: sa_exc.SQLAlchemyError, retry_after: int = 30) -> StoreError:
    """Map a SQLAlchemy failure to a transient or permanent store error."""
    if isinstance(error, _TRANSIENT_ERRORS):
        return TransientStoreError(retry_after=retry_after)
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return TransientStoreError(retry_after=retry_after)
    return StoreError()


class Database:
    """Owns the engine for the lifetime of the process.

    Built once at startup and handed to request handlers via
    ``app.state``; ``dispose()`` releases pooled connections on shutdown.
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
        retry_max_delay: float = 4.0,
        retry_after: int = 30,
    ):
        self.url = url
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.retry_after = retry_after

        engine_kwargs = {"echo": echo}
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
                # Every connection must see the same in-memory database
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(url, **engine_kwargs)

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.DATABASE_URL,
            echo=settings.DATABASE_ECHO,
            retry_attempts=settings.STORE_RETRY_ATTEMPTS,
            retry_base_delay=settings.STORE_RETRY_BASE_DELAY,
            retry_max_delay=settings.STORE_RETRY_MAX_DELAY,
            retry_after=settings.RETRY_AFTER_SECONDS,
        )

    def create_all(self) -> None:
        """Create database tables based on SQLModel metadata."""
        SQLModel.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        SQLModel.metadata.drop_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database connections closed")

    @contextmanager
    def session(self, expire_on_commit: bool = True) -> Iterator[Session]:
        with Session(self.engine, expire_on_commit=expire_on_commit) as session:
            yield session

    def _run_once(self, work: Callable[[AttemptStore], T]) -> T:
        # Results are built from loaded state, so nothing reads after the commit
        with self.session(expire_on_commit=False) as session:
            try:
                return work(AttemptStore(session))
            except sa_exc.SQLAlchemyError as e:
                session.rollback()
                error = classify_error(e, retry_after=self.retry_after)
                logger.warning("Store failure (%s): %s", error.code, e.__class__.__name__)
                raise error from e

    def run(self, work: Callable[[AttemptStore], T], attempts: Optional[int] = None) -> T:
        """Run ``work`` as one unit of work, retrying transient store failures.

        Domain errors raised by ``work`` propagate on the first occurrence.
        """
        retrying = Retrying(
            stop=stop_after_attempt(attempts or self.retry_attempts),
            wait=wait_exponential(
                multiplier=self.retry_base_delay, max=self.retry_max_delay
            ),
            retry=retry_if_exception_type(TransientStoreError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(self._run_once, work)

    def ping(self) -> float:
        """Round-trip ``SELECT 1`` and return the latency in milliseconds."""
        started = time.perf_counter()
        try:
            with self.session() as session:
                session.exec(text("SELECT 1"))
        except sa_exc.SQLAlchemyError as e:
            raise classify_error(e, retry_after=self.retry_after) from e
        return round((time.perf_counter() - started) * 1000, 2)


def get_database(request: Request) -> Database:
    """FastAPI dependency returning the handle built at startup."""
    return request.app.state.database
