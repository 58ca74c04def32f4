import random

import pytest

from assessment.core.errors import ConfigurationError, PoolNotFound
from assessment.models.schemas import (
    Difficulty,
    DifficultyDistribution,
    HistoryUpdate,
    QuestionDraft,
    QuestionType,
    QuestionTypeDistribution,
    SelectorConfig,
)
from assessment.services.selector import QuestionSelector

from conftest import seed

EASY_ONLY = DifficultyDistribution(easy=100, medium=0, hard=0)
MCQ_ONLY = QuestionTypeDistribution(MCQ=100, Coding=0, TrueFalse=0, FillInBlank=0)


def config(total, **kwargs):
    values = {
        "total_questions": total,
        "difficulty_distribution": EASY_ONLY,
        "question_types": MCQ_ONLY,
        "generate_if_needed": False,
    }
    values.update(kwargs)
    return SelectorConfig(**values)


class CountingGenerator:
    def __init__(self):
        self.requests = []

    def generate(self, category, difficulty, question_type, count, topic=None):
        self.requests.append((category, difficulty, question_type, count, topic))
        return [
            QuestionDraft(
                question_type=question_type,
                difficulty=difficulty,
                category=category,
                question_text=f"generated {category} {difficulty} {i} {len(self.requests)}",
                options=["A", "B"],
                correct_answer="A",
                is_ai_generated=True,
            )
            for i in range(count)
        ]


@pytest.fixture
def selector(store, tracker):
    return QuestionSelector(store, tracker, generator=None, rng=random.Random(11))


def test_short_store_without_generation_returns_what_exists(store, selector):
    seed(store, 5)
    picked = selector.select_questions_for_test("l1", config(7))
    assert len(picked) == 5
    assert len({q.id for q in picked}) == 5


def test_recently_seen_questions_are_excluded(store, tracker, selector):
    qs = seed(store, 10)
    seen = {q.id for q in qs[:6]}
    tracker.commit("l1", [
        HistoryUpdate(question_id=qid, category="Python", difficulty="easy", answered_correctly=True) for qid in seen
    ])

    picked = selector.select_questions_for_test("l1", config(4))
    assert len(picked) == 4
    assert not seen & {q.id for q in picked}

    # the window does not apply to other learners or when switched off
    assert len(selector.select_questions_for_test("l2", config(10))) == 10
    assert len(selector.select_questions_for_test("l1", config(10, avoid_recent_questions=False))) == 10
    assert len(selector.select_questions_for_test("l1", config(10, recent_question_days=0))) == 10


def test_breakdown_cells_are_filled_by_difficulty_and_type(store, selector):
    seed(store, 4)
    seed(store, 4, difficulty=Difficulty.HARD)
    seed(store, 4, question_type=QuestionType.TRUE_FALSE, answer="True")
    cfg = config(
        6,
        difficulty_distribution=DifficultyDistribution(easy=50, medium=0, hard=50),
        question_types=QuestionTypeDistribution(MCQ=67, Coding=0, TrueFalse=33, FillInBlank=0),
    )
    picked = selector.select_questions_for_test("l1", cfg)
    counts = {}
    for q in picked:
        key = (q.difficulty, q.question_type)
        counts[key] = counts.get(key, 0) + 1
    # easy tier: 3 -> 2 MCQ + 1 TrueFalse; hard tier: 3 -> 2 MCQ + 1 TrueFalse, but no hard TrueFalse exists
    assert counts == {
        (Difficulty.EASY, QuestionType.MCQ): 2,
        (Difficulty.EASY, QuestionType.TRUE_FALSE): 1,
        (Difficulty.HARD, QuestionType.MCQ): 2,
    }


def test_pool_restricts_questions(store, selector):
    qs = seed(store, 10)
    pool = store.create_pool("small", question_ids=[q.id for q in qs[:3]])
    picked = selector.select_questions_for_test("l1", config(5, pool_id=pool.id))
    assert {q.id for q in picked} <= {q.id for q in qs[:3]}
    assert len(picked) == 3


def test_default_pool_applies_without_pool_id(store, selector):
    qs = seed(store, 6)
    store.create_pool("default", question_ids=[qs[0].id, qs[1].id], is_default=True)
    picked = selector.select_questions_for_test("l1", config(5))
    assert {q.id for q in picked} == {qs[0].id, qs[1].id}


def test_unknown_pool(selector):
    with pytest.raises(PoolNotFound):
        selector.select_questions_for_test("l1", config(3, pool_id=12345))


def test_generation_covers_shortfall(store, tracker):
    seed(store, 2)
    generator = CountingGenerator()
    selector = QuestionSelector(store, tracker, generator=generator, rng=random.Random(5))
    picked = selector.select_questions_for_test(
        "l1", config(5, generate_if_needed=True, categories=["Python"], topic="loops")
    )
    assert len(picked) == 5
    assert sum(1 for q in picked if q.is_ai_generated) == 3
    assert generator.requests == [("Python", Difficulty.EASY, QuestionType.MCQ, 3, "loops")]
    # generated questions are persisted to the bank
    assert all(q.id for q in picked)
    assert len(store.get_questions([q.id for q in picked])) == 5


def test_generation_without_categories_uses_general(store, tracker):
    generator = CountingGenerator()
    selector = QuestionSelector(store, tracker, generator=generator, rng=random.Random(5))
    picked = selector.select_questions_for_test("l1", config(2, generate_if_needed=True))
    assert len(picked) == 2
    assert {q.category for q in picked} == {"General"}


def test_bad_configuration_is_rejected_before_store_access(tracker):
    class ExplodingStore:
        def __getattr__(self, name):
            raise AssertionError(f"store.{name} must not be called")

    selector = QuestionSelector(ExplodingStore(), tracker)
    with pytest.raises(ConfigurationError):
        selector.select_questions_for_test(
            "l1", config(5, difficulty_distribution=DifficultyDistribution(easy=50, medium=10, hard=10))
        )


def test_zero_total_returns_empty(selector):
    assert selector.select_questions_for_test("l1", config(0)) == []
