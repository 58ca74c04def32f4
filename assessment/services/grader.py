"""
Scores submissions and feeds the outcome back into learner history.
"""
import asyncio
import logging
import math
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from assessment.core.errors import HistoryPersistenceError, SandboxUnavailable
from assessment.core.metrics import GRADED_SUBMISSIONS, HISTORY_COMMIT_FAILURES
from assessment.models.schemas import (
    OBJECTIVE_TYPES,
    Answer,
    Assessment,
    CodeAnswer,
    GradeResult,
    HistoryUpdate,
    ObjectiveAnswer,
    Question,
    QuestionOutcome,
    QuestionType,
    SubmissionIn,
    utcnow,
)
from assessment.services.history import HistoryTracker
from assessment.services.sandbox import SandboxExecutor

logger = logging.getLogger(__name__)


class RetryQueue(Protocol):
    def enqueue_history(self, learner_id: str, updates: Sequence[HistoryUpdate]) -> Optional[str]: ...


def required_score(total: int, passing_percentage: float) -> int:
    return math.ceil(round(total * passing_percentage / 100, 9))


def answers_by_question(submission: SubmissionIn) -> Dict[int, Answer]:
    answers: Dict[int, Answer] = {}
    for item in submission.answers:
        answers.setdefault(item.question_id, item.answer)
    return answers


class Grader:
    def __init__(
        self,
        sandbox: SandboxExecutor,
        tracker: HistoryTracker,
        retry_queue: Optional[RetryQueue] = None,
        time_limit: Optional[float] = None,
    ):
        self.sandbox = sandbox
        self.tracker = tracker
        self.retry_queue = retry_queue
        self.time_limit = time_limit

    async def grade(self, assessment: Assessment, submission: SubmissionIn) -> GradeResult:
        """Score every question of ``assessment``; pure with respect to stored state.

        Objective questions need an exact string match with the stored answer.
        Coding questions need every test case to pass. Each correct question
        is worth one point.
        """
        answers = answers_by_question(submission)
        outcomes = await asyncio.gather(*(
            self._grade_question(q, answers.get(q.id)) for q in assessment.questions
        ))
        score = sum(1 for o in outcomes if o.correct)
        total = len(assessment.questions)
        passed = score >= required_score(total, assessment.config.passing_percentage)
        GRADED_SUBMISSIONS.labels(verdict="passed" if passed else "failed").inc()
        return GradeResult(score=score, is_passed=passed, total_questions=total, outcomes=list(outcomes))

    async def _grade_question(self, question: Question, answer: Optional[Answer]) -> QuestionOutcome:
        outcome = QuestionOutcome(
            question_id=question.id,
            question_type=question.question_type,
            category=question.category,
            difficulty=question.difficulty,
            answered=answer is not None,
            correct=False,
        )
        if answer is None:
            return outcome
        if question.question_type in OBJECTIVE_TYPES:
            outcome.correct = (
                isinstance(answer, ObjectiveAnswer)
                and question.correct_answer is not None
                and answer.value == question.correct_answer
            )
        elif question.question_type == QuestionType.CODING and isinstance(answer, CodeAnswer):
            outcome.correct, outcome.cases_run, outcome.infrastructure_error = await self._grade_code(question, answer)
        return outcome

    async def _grade_code(self, question: Question, answer: CodeAnswer) -> Tuple[bool, int, bool]:
        if not question.test_cases:
            return False, 0, False
        for n, case in enumerate(question.test_cases, 1):
            try:
                result = await self.sandbox.execute_case(answer.source, case, self.time_limit)
            except SandboxUnavailable as e:
                logger.error(f"Sandbox unavailable while grading question {question.id}: {e}")
                return False, n, True
            if not result.passed:
                return False, n, False
        return True, len(question.test_cases), False

    @staticmethod
    def history_updates(assessment: Assessment, result: GradeResult) -> List[HistoryUpdate]:
        """One update per question in the assessment; unanswered counts as incorrect."""
        now = utcnow()
        return [
            HistoryUpdate(
                question_id=o.question_id,
                test_id=assessment.id,
                category=o.category,
                difficulty=o.difficulty.value,
                answered_correctly=o.correct,
                seen_at=now,
            )
            for o in result.outcomes
        ]

    def record_history(self, assessment: Assessment, result: GradeResult) -> bool:
        """Commit the history batch; failures are logged and queued, never raised."""
        updates = self.history_updates(assessment, result)
        try:
            self.tracker.commit(assessment.learner_id, updates)
            return True
        except HistoryPersistenceError as e:
            HISTORY_COMMIT_FAILURES.inc()
            logger.error(f"History update failed for assessment {assessment.id}: {e}")
            if self.retry_queue is not None:
                self.retry_queue.enqueue_history(assessment.learner_id, updates)
            return False
