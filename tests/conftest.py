import random

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from assessment.core.config import Settings
from assessment.core.database import build_session_factory, init_db
from assessment.models.schemas import CodeTestCase, Difficulty, QuestionDraft, QuestionType
from assessment.services.container import build_services
from assessment.services.generator import StaticTemplateGenerator
from assessment.services.history import HistoryTracker
from assessment.services.store import SqlQuestionStore


def make_engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

    # let SQLAlchemy drive BEGIN/SAVEPOINT instead of pysqlite
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture
def settings():
    return Settings(
        ENVIRONMENT="testing",
        DATABASE_URL="sqlite://",
        HISTORY_RETRY_ENABLED=False,
        PROMETHEUS_ENABLED=False,
        SENTRY_DSN=None,
        OPENAI_API_KEY=None,
        SANDBOX_TIME_LIMIT=2.0,
        SANDBOX_STARTUP_GRACE=1.0,
    )


@pytest.fixture
def engine():
    engine = make_engine()
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return SqlQuestionStore(session_factory)


@pytest.fixture
def tracker(session_factory):
    return HistoryTracker(session_factory)


@pytest.fixture
def services(settings, engine):
    rng = random.Random(7)
    return build_services(settings, engine=engine, generator=StaticTemplateGenerator(rng=rng), rng=rng)


def objective(text, difficulty=Difficulty.EASY, question_type=QuestionType.MCQ, category="Python", answer="A"):
    options = ["True", "False"] if question_type == QuestionType.TRUE_FALSE else ["A", "B", "C", "D"]
    return QuestionDraft(
        question_type=question_type,
        difficulty=difficulty,
        category=category,
        question_text=text,
        options=options,
        correct_answer=answer,
    )


def coding(text, cases, difficulty=Difficulty.MEDIUM, category="Python"):
    return QuestionDraft(
        question_type=QuestionType.CODING,
        difficulty=difficulty,
        category=category,
        question_text=text,
        starter_code="def solution(*args):\n    pass\n",
        test_cases=[CodeTestCase(input=i, output=o, hidden=h) for i, o, h in cases],
    )


def seed(store, n, **kwargs):
    return [store.add_question(objective(f"Question {i} {kwargs}", **kwargs)) for i in range(n)]
