import os
import tempfile
from pathlib import Path

import pytest

# Must be set before database.py is imported anywhere
_DB_DIR = Path(tempfile.mkdtemp(prefix="interview_coach_tests_"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{(_DB_DIR / 'app.db').as_posix()}"
os.environ.setdefault("GEMINI_API_KEY", "test-key")

from schemas import JobContext, QuestionAnswerPair  # noqa: E402


@pytest.fixture
def job() -> JobContext:
    return JobContext(
        position="Backend Engineer",
        description="Build and operate Python web services.",
        experience=3,
        tech_stack="Python, FastAPI, PostgreSQL",
    )


@pytest.fixture
def qa() -> QuestionAnswerPair:
    return QuestionAnswerPair(
        question="What is a cache?",
        answer="A fast storage layer that keeps copies of frequently used data.",
    )
