"""
Assembles a personalised question set for one assessment.

The selector turns percentage distributions into an exact per-(difficulty,
type) breakdown, samples each cell from the question store while excluding
the learner's recently seen questions, covers any shortfall through the
question generator, and shuffles the result.
"""
import logging
import math
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from assessment.core.errors import ConfigurationError, PoolNotFound
from assessment.models.schemas import (
    Difficulty,
    DifficultyDistribution,
    Question,
    QuestionPool,
    QuestionType,
    QuestionTypeDistribution,
    SelectorConfig,
)
from assessment.services.generator import QuestionGenerator, fisher_yates
from assessment.services.history import HistoryTracker
from assessment.services.store import QuestionFilter, QuestionStore
from assessment.services.validation import check_difficulty_distribution, check_type_distribution

logger = logging.getLogger(__name__)

# TrueFalse is last: it absorbs the rounding slack within a tier
TYPE_ORDER = [QuestionType.MCQ, QuestionType.CODING, QuestionType.FILL_IN_BLANK]
SLACK_TYPE = QuestionType.TRUE_FALSE
DEFAULT_CATEGORY = "General"


@dataclass(frozen=True)
class BreakdownCell:
    difficulty: Difficulty
    question_type: QuestionType
    count: int


def round_half_up(x: float) -> int:
    return math.floor(round(x, 9) + 0.5)


def _share(total: int, pct: float, remaining: int) -> int:
    return max(0, min(round_half_up(total * pct / 100), remaining))


def split_by_type(count: int, types: QuestionTypeDistribution) -> List[Tuple[QuestionType, int]]:
    parts = []
    remaining = count
    for qtype in TYPE_ORDER:
        n = _share(count, types.weight(qtype), remaining)
        parts.append((qtype, n))
        remaining -= n
    parts.append((SLACK_TYPE, remaining))
    return parts


def compute_breakdown(
    total: int,
    difficulty_distribution: DifficultyDistribution,
    question_types: QuestionTypeDistribution,
) -> List[BreakdownCell]:
    """Per-cell question counts that always sum to exactly ``total``.

    Easy and medium tiers are rounded half-up and hard takes the remainder;
    inside a tier the same rule applies across types with TrueFalse taking
    the remainder. Counts are clamped so no cell goes negative. An all-zero
    axis requests nothing.
    """
    if total <= 0 or difficulty_distribution.total() <= 0 or question_types.total() <= 0:
        return []
    easy = _share(total, difficulty_distribution.easy, total)
    medium = _share(total, difficulty_distribution.medium, total - easy)
    tiers = [(Difficulty.EASY, easy), (Difficulty.MEDIUM, medium), (Difficulty.HARD, total - easy - medium)]

    cells = []
    for difficulty, count in tiers:
        if count <= 0:
            continue
        for qtype, n in split_by_type(count, question_types):
            if n > 0:
                cells.append(BreakdownCell(difficulty, qtype, n))
    return cells


def validate_config(config: SelectorConfig, tolerance: float) -> None:
    """Raise ``ConfigurationError`` for malformed distributions or windows."""
    if config.recent_question_days < 0:
        raise ConfigurationError("recent_question_days must not be negative")
    check_difficulty_distribution(config.difficulty_distribution, tolerance)
    check_type_distribution(config.question_types, tolerance)


class QuestionSelector:
    def __init__(
        self,
        store: QuestionStore,
        tracker: HistoryTracker,
        generator: Optional[QuestionGenerator] = None,
        rng: Optional[random.Random] = None,
        distribution_tolerance: float = 1.0,
    ):
        self.store = store
        self.tracker = tracker
        self.generator = generator
        self.rng = rng or random.Random()
        self.tolerance = distribution_tolerance

    def _bound_pool(self, pool_id: Optional[int]) -> Optional[QuestionPool]:
        if pool_id is not None:
            pool = self.store.get_pool(pool_id)
            if pool is None:
                raise PoolNotFound(f"pool {pool_id} not found")
            return pool
        return self.store.get_default_pool()

    def select_questions_for_test(self, learner_id: str, config: SelectorConfig) -> List[Question]:
        """Ordered question list for one test, at most ``config.total_questions`` long.

        The list can be shorter when the store and the generator together cannot
        fill the breakdown; that is not an error.
        """
        validate_config(config, self.tolerance)
        breakdown = compute_breakdown(config.total_questions, config.difficulty_distribution, config.question_types)
        if not breakdown:
            return []

        exclude: Set[int] = set()
        if config.avoid_recent_questions:
            exclude = self.tracker.recently_seen_ids(learner_id, config.recent_question_days)

        pool = self._bound_pool(config.pool_id)
        pool_ids = set(pool.question_ids) if pool and pool.question_ids else None

        selected: List[Question] = []
        filled: Dict[BreakdownCell, int] = {}
        for cell in breakdown:
            criteria = QuestionFilter(
                difficulty=cell.difficulty,
                question_type=cell.question_type,
                exclude_ids=set(exclude),
                categories=config.categories or None,
                pool_question_ids=pool_ids,
            )
            drawn = [q for q in self.store.sample(criteria, cell.count) if q.id not in exclude][:cell.count]
            exclude.update(q.id for q in drawn)
            filled[cell] = len(drawn)
            selected.extend(drawn)

        shortfall = config.total_questions - len(selected)
        if shortfall > 0 and config.generate_if_needed and self.generator is not None:
            logger.info(f"Learner {learner_id}: store short by {shortfall} question(s), generating")
            selected.extend(self._generate_missing(breakdown, filled, exclude, config)[:shortfall])
        elif shortfall > 0:
            logger.info(f"Learner {learner_id}: returning {len(selected)}/{config.total_questions} questions")

        return fisher_yates(selected, self.rng)

    def _generate_missing(
        self,
        breakdown: List[BreakdownCell],
        filled: Dict[BreakdownCell, int],
        exclude: Set[int],
        config: SelectorConfig,
    ) -> List[Question]:
        generated: List[Question] = []
        for cell in breakdown:
            need = cell.count - filled.get(cell, 0)
            if need <= 0:
                continue
            category = self.rng.choice(config.categories) if config.categories else DEFAULT_CATEGORY
            drafts = self.generator.generate(category, cell.difficulty, cell.question_type, need, config.topic)
            added = 0
            for draft in drafts:
                if added >= need:
                    break
                question = self.store.persist(draft)
                # the store reuses identical rows, which may already be selected or recently seen
                if question.id in exclude:
                    continue
                exclude.add(question.id)
                generated.append(question)
                added += 1
        return generated
