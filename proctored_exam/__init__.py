"""Attempt engine for timed, proctored MCQ / integer-answer examinations."""
