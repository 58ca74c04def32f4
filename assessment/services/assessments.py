"""
Assessment lifecycle: assemble a test for a learner, start it, take a
submission exactly once, and run code for "try it" feedback.
"""
import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from assessment.core.config import Settings
from assessment.core.errors import (
    AlreadySubmitted,
    AssessmentExpired,
    AssessmentNotFound,
    ConfigurationError,
    NoQuestionsAvailable,
    QuestionNotFound,
)
from assessment.models.orm import AssessmentItem, AssessmentRecord, Submission
from assessment.models.schemas import (
    OPEN_STATUSES,
    Assessment,
    AssessmentConfig,
    AssessmentStatus,
    AssessmentView,
    CaseResult,
    CodeTestCase,
    GradeResult,
    LearnerQuestion,
    QuestionPool,
    QuestionType,
    SelectorConfig,
    SubmissionIn,
    as_utc,
    utcnow,
)
from assessment.services.adaptive import DifficultyAdviser
from assessment.services.grader import Grader
from assessment.services.sandbox import SandboxExecutor
from assessment.services.selector import QuestionSelector, validate_config
from assessment.services.store import SqlQuestionStore

logger = logging.getLogger(__name__)

OPEN_VALUES = [s.value for s in OPEN_STATUSES]


class AssessmentService:
    def __init__(
        self,
        session_factory: sessionmaker,
        store: SqlQuestionStore,
        selector: QuestionSelector,
        grader: Grader,
        adviser: DifficultyAdviser,
        sandbox: SandboxExecutor,
        settings: Settings,
    ):
        self._session_factory = session_factory
        self.store = store
        self.selector = selector
        self.grader = grader
        self.adviser = adviser
        self.sandbox = sandbox
        self.settings = settings

    def default_config(self, pool: Optional[QuestionPool] = None) -> AssessmentConfig:
        config = AssessmentConfig(
            total_time_limit=self.settings.DEFAULT_TIME_LIMIT,
            passing_percentage=self.settings.DEFAULT_PASSING_PERCENTAGE,
            max_tab_switches=self.settings.DEFAULT_MAX_TAB_SWITCHES,
        )
        if pool is not None:
            config.total_time_limit = pool.config.time_limit
            config.passing_percentage = pool.config.passing_percentage
        return config

    # ============= Assembly =============

    def assemble(
        self,
        learner_id: str,
        selector_config: SelectorConfig,
        config: Optional[AssessmentConfig] = None,
        adaptive: bool = False,
    ) -> Assessment:
        """Select questions for ``learner_id`` and freeze them into a new assessment.

        With ``adaptive`` the difficulty mix comes from the learner's history
        instead of ``selector_config``. A short selection is accepted; an empty
        one raises ``NoQuestionsAvailable``.
        """
        if selector_config.total_questions < 1:
            raise ConfigurationError("total_questions must be at least 1")
        validate_config(selector_config, self.settings.DISTRIBUTION_TOLERANCE)
        if adaptive:
            mix = self.adviser.get_adaptive_difficulty(learner_id)
            selector_config = selector_config.model_copy(update={"difficulty_distribution": mix})

        questions = self.selector.select_questions_for_test(learner_id, selector_config)
        if not questions:
            raise NoQuestionsAvailable(f"no questions available for learner {learner_id}")
        config = config or self.default_config()

        with self._session_factory() as db, db.begin():
            rec = AssessmentRecord(
                learner_id=learner_id,
                config=config.model_dump(mode="json"),
                score=0,
                total_points=sum(q.points or 0 for q in questions),
                status=AssessmentStatus.ASSIGNED.value,
            )
            db.add(rec)
            db.flush()
            for position, q in enumerate(questions):
                db.add(AssessmentItem(assessment_id=rec.id, question_id=q.id, position=position))
            assessment_id = rec.id

        if len(questions) < selector_config.total_questions:
            logger.info(f"Assessment {assessment_id} assembled short: {len(questions)}/{selector_config.total_questions}")
        return Assessment(id=assessment_id, learner_id=learner_id, questions=questions, config=config)

    # ============= Loading =============

    @staticmethod
    def _item_ids(db: Session, assessment_id: int) -> List[int]:
        return list(db.scalars(
            select(AssessmentItem.question_id)
            .where(AssessmentItem.assessment_id == assessment_id)
            .order_by(AssessmentItem.position)
        ).all())

    def _to_assessment(self, rec: AssessmentRecord, question_ids: List[int]) -> Assessment:
        # called once the record's session is closed; the store opens its own
        return Assessment(
            id=rec.id,
            learner_id=rec.learner_id,
            questions=self.store.get_questions(question_ids),
            config=AssessmentConfig.model_validate(rec.config or {}),
            score=rec.score,
            status=AssessmentStatus(rec.status),
            start_time=as_utc(rec.start_time),
            end_time=as_utc(rec.end_time),
            expires_at=as_utc(rec.expires_at),
        )

    @staticmethod
    def _owned(db: Session, assessment_id: int, learner_id: Optional[str], lock: bool = False) -> AssessmentRecord:
        rec = db.get(AssessmentRecord, assessment_id, with_for_update=lock)
        if rec is None or (learner_id is not None and rec.learner_id != learner_id):
            raise AssessmentNotFound(f"assessment {assessment_id} not found")
        return rec

    def get(self, assessment_id: int, learner_id: Optional[str] = None) -> Assessment:
        with self._session_factory() as db:
            rec = self._owned(db, assessment_id, learner_id)
            ids = self._item_ids(db, rec.id)
        return self._to_assessment(rec, ids)

    # ============= Taking the test =============

    def start(self, assessment_id: int, learner_id: str, now: Optional[datetime] = None) -> AssessmentView:
        """Open (or resume) an assessment and return what the learner may see."""
        now = now or utcnow()
        with self._session_factory() as db, db.begin():
            rec = self._owned(db, assessment_id, learner_id, lock=True)
            status = AssessmentStatus(rec.status)
            if status == AssessmentStatus.ASSIGNED:
                limit = AssessmentConfig.model_validate(rec.config or {}).total_time_limit
                rec.status = AssessmentStatus.IN_PROGRESS.value
                rec.start_time = now
                rec.expires_at = now + timedelta(seconds=limit)
            elif status == AssessmentStatus.IN_PROGRESS and rec.expires_at and now > as_utc(rec.expires_at):
                rec.status = AssessmentStatus.EXPIRED.value
                rec.end_time = now
            db.flush()
            ids = self._item_ids(db, rec.id)
        return self.learner_view(self._to_assessment(rec, ids))

    @staticmethod
    def learner_view(assessment: Assessment) -> AssessmentView:
        questions = []
        for q in assessment.questions:
            options = list(q.options)
            if assessment.config.shuffle_options and q.question_type == QuestionType.MCQ:
                # seeded so a resumed assessment shows the same order
                random.Random(f"{assessment.id}:{q.id}").shuffle(options)
            questions.append(LearnerQuestion(
                id=q.id,
                question_type=q.question_type,
                difficulty=q.difficulty,
                category=q.category,
                question_text=q.question_text,
                options=options,
                starter_code=q.starter_code,
                sample_input=q.sample_input,
                sample_output=q.sample_output,
                test_cases=[c for c in q.test_cases if not c.hidden],
                points=q.points,
            ))
        return AssessmentView(
            id=assessment.id,
            status=assessment.status,
            config=assessment.config,
            questions=questions,
            start_time=assessment.start_time,
            expires_at=assessment.expires_at,
        )

    # ============= Submission =============

    async def submit(
        self,
        assessment_id: int,
        learner_id: str,
        submission: SubmissionIn,
        now: Optional[datetime] = None,
    ) -> GradeResult:
        """Grade a submission exactly once.

        Re-submission raises ``AlreadySubmitted`` without touching history; a
        submission after the deadline marks the assessment Expired and raises
        ``AssessmentExpired``. A history write failure does not affect the
        returned result.
        """
        now = now or utcnow()
        assessment = await asyncio.to_thread(self._claim, assessment_id, learner_id, now)
        result = await self.grader.grade(assessment, submission)
        await asyncio.to_thread(self._persist, assessment, submission, result, now)
        await asyncio.to_thread(self.grader.record_history, assessment, result)
        logger.info(
            f"Assessment {assessment_id} graded for {learner_id}: "
            f"{result.score}/{result.total_questions} passed={result.is_passed}"
        )
        return result

    def _claim(self, assessment_id: int, learner_id: str, now: datetime) -> Assessment:
        expired = False
        with self._session_factory() as db, db.begin():
            rec = self._owned(db, assessment_id, learner_id, lock=True)
            if rec.status not in OPEN_VALUES:
                logger.warning(f"Rejected re-submission of assessment {assessment_id} ({rec.status}) by {learner_id}")
                raise AlreadySubmitted(f"assessment {assessment_id} is {rec.status}")
            if rec.expires_at and now > as_utc(rec.expires_at):
                rec.status = AssessmentStatus.EXPIRED.value
                rec.end_time = now
                expired = True
            ids = self._item_ids(db, rec.id)
        if expired:
            raise AssessmentExpired(f"assessment {assessment_id} expired")
        return self._to_assessment(rec, ids)

    def _persist(self, assessment: Assessment, submission: SubmissionIn, result: GradeResult, now: datetime) -> None:
        status = AssessmentStatus.COMPLETED
        if submission.tab_switch_count > assessment.config.max_tab_switches:
            status = AssessmentStatus.TERMINATED
        try:
            with self._session_factory() as db, db.begin():
                claimed = db.execute(
                    update(AssessmentRecord)
                    .where(AssessmentRecord.id == assessment.id, AssessmentRecord.status.in_(OPEN_VALUES))
                    .values(status=status.value, score=result.score, end_time=now)
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount != 1:
                    raise AlreadySubmitted(f"assessment {assessment.id} was submitted concurrently")
                db.add(Submission(
                    assessment_id=assessment.id,
                    learner_id=assessment.learner_id,
                    answers=[a.model_dump(mode="json") for a in submission.answers],
                    score=result.score,
                    total_questions=result.total_questions,
                    is_passed=result.is_passed,
                    tab_switch_count=submission.tab_switch_count,
                    submitted_at=now,
                ))
                db.flush()
        except IntegrityError as e:
            raise AlreadySubmitted(f"assessment {assessment.id} already has a submission") from e

    # ============= Try it =============

    async def run_code(
        self,
        code: str,
        test_cases: Sequence[CodeTestCase] = (),
        question_id: Optional[int] = None,
        time_limit: Optional[float] = None,
    ) -> List[CaseResult]:
        """Run ``code`` against explicit cases, or the visible cases of ``question_id``."""
        cases = list(test_cases)
        if question_id is not None:
            found = await asyncio.to_thread(self.store.get_questions, [question_id])
            if not found:
                raise QuestionNotFound(f"question {question_id} not found")
            cases.extend(c for c in found[0].test_cases if not c.hidden)
        return list(await asyncio.gather(*(self.sandbox.execute_case(code, c, time_limit) for c in cases)))
