"""
Explicit wiring of the engine's services, built once per process.
"""
import random
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from assessment.core.config import Settings
from assessment.core.database import build_engine, build_session_factory, init_db
from assessment.jobs.queue import HistoryRetryQueue
from assessment.services.adaptive import DifficultyAdviser
from assessment.services.assessments import AssessmentService
from assessment.services.generator import QuestionGenerator, build_generator
from assessment.services.grader import Grader, RetryQueue
from assessment.services.history import HistoryTracker
from assessment.services.sandbox import SandboxExecutor
from assessment.services.selector import QuestionSelector
from assessment.services.store import SqlQuestionStore


@dataclass
class Services:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    store: SqlQuestionStore
    tracker: HistoryTracker
    adviser: DifficultyAdviser
    generator: QuestionGenerator
    selector: QuestionSelector
    sandbox: SandboxExecutor
    grader: Grader
    assessments: AssessmentService

    async def close(self) -> None:
        await self.sandbox.drain(timeout=self.settings.SANDBOX_MAX_TIME_LIMIT + self.settings.SANDBOX_STARTUP_GRACE)
        self.engine.dispose()


def build_services(
    settings: Settings,
    engine: Optional[Engine] = None,
    generator: Optional[QuestionGenerator] = None,
    retry_queue: Optional[RetryQueue] = None,
    rng: Optional[random.Random] = None,
    create_tables: bool = True,
) -> Services:
    engine = engine or build_engine(settings)
    if create_tables:
        init_db(engine)
    session_factory = build_session_factory(engine)
    rng = rng or random.Random()

    store = SqlQuestionStore(session_factory, settings.DISTRIBUTION_TOLERANCE)
    tracker = HistoryTracker(session_factory)
    adviser = DifficultyAdviser(tracker)
    generator = generator or build_generator(settings, rng=rng)
    selector = QuestionSelector(store, tracker, generator, rng=rng, distribution_tolerance=settings.DISTRIBUTION_TOLERANCE)
    sandbox = SandboxExecutor(settings)
    if retry_queue is None and settings.HISTORY_RETRY_ENABLED:
        retry_queue = HistoryRetryQueue.from_settings(settings)
    grader = Grader(sandbox, tracker, retry_queue=retry_queue, time_limit=settings.SANDBOX_TIME_LIMIT)
    assessments = AssessmentService(session_factory, store, selector, grader, adviser, sandbox, settings)
    return Services(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        store=store,
        tracker=tracker,
        adviser=adviser,
        generator=generator,
        selector=selector,
        sandbox=sandbox,
        grader=grader,
        assessments=assessments,
    )
