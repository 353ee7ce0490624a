"""
Sample Data Seeder
Populates the configured database with a live mock test so the attempt
endpoints can be tried locally.

Usage:
    python seed_data.py
"""

import logging

from sqlmodel import select

from proctored_exam.config import configure_logging, get_settings
from proctored_exam.database import Database
from proctored_exam.models import Test
from proctored_exam.seed import seed_sample_test

logger = logging.getLogger("seed_data")


def seed_database() -> None:
    """Create tables and insert the sample test unless one already exists."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    database = Database.from_settings(settings)
    try:
        database.create_all()
        with database.session() as session:
            if session.exec(select(Test)).first():
                logger.info("Database already contains tests. Skipping seed.")
                return
            test = seed_sample_test(session)
            logger.info(
                "Seeded live test %r (id=%s, total marks %s)", test.name, test.id, test.total_marks
            )
    finally:
        database.dispose()


if __name__ == "__main__":
    seed_database()
