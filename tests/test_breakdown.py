import pytest

from assessment.core.errors import ConfigurationError
from assessment.models.schemas import Difficulty, DifficultyDistribution, QuestionType, QuestionTypeDistribution, SelectorConfig
from assessment.services.selector import compute_breakdown, round_half_up, split_by_type, validate_config


def tiers(cells):
    totals = {d: 0 for d in Difficulty}
    for cell in cells:
        totals[cell.difficulty] += cell.count
    return totals


def test_example_tiers_for_ten_questions():
    cells = compute_breakdown(10, DifficultyDistribution(easy=30, medium=50, hard=20), QuestionTypeDistribution())
    assert tiers(cells) == {Difficulty.EASY: 3, Difficulty.MEDIUM: 5, Difficulty.HARD: 2}
    assert sum(c.count for c in cells) == 10


@pytest.mark.parametrize("total", [1, 2, 3, 5, 7, 10, 13, 25, 50, 99])
@pytest.mark.parametrize("difficulty", [
    DifficultyDistribution(),
    DifficultyDistribution(easy=33.4, medium=33.3, hard=33.3),
    DifficultyDistribution(easy=50, medium=50, hard=0),
    DifficultyDistribution(easy=0, medium=0, hard=100),
    DifficultyDistribution(easy=45, medium=45, hard=10.5),
])
@pytest.mark.parametrize("types", [
    QuestionTypeDistribution(),
    QuestionTypeDistribution(MCQ=25, Coding=25, TrueFalse=25, FillInBlank=25),
    QuestionTypeDistribution(MCQ=55, Coding=45, TrueFalse=0, FillInBlank=0),
])
def test_breakdown_sums_to_total(total, difficulty, types):
    cells = compute_breakdown(total, difficulty, types)
    assert sum(c.count for c in cells) == total
    assert all(c.count > 0 for c in cells)


def test_rounding_overshoot_is_clamped():
    # 50.5% of 3 rounds to 2 twice, which would exceed the total without clamping
    cells = compute_breakdown(3, DifficultyDistribution(easy=50.5, medium=50.5, hard=0), QuestionTypeDistribution())
    totals = tiers(cells)
    assert totals == {Difficulty.EASY: 2, Difficulty.MEDIUM: 1, Difficulty.HARD: 0}


def test_true_false_takes_type_remainder():
    parts = dict(split_by_type(10, QuestionTypeDistribution(MCQ=70, Coding=20, TrueFalse=10, FillInBlank=0)))
    assert parts == {QuestionType.MCQ: 7, QuestionType.CODING: 2, QuestionType.FILL_IN_BLANK: 0, QuestionType.TRUE_FALSE: 1}


def test_zero_requests_nothing():
    assert compute_breakdown(0, DifficultyDistribution(), QuestionTypeDistribution()) == []
    assert compute_breakdown(5, DifficultyDistribution(easy=0, medium=0, hard=0), QuestionTypeDistribution()) == []


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4999) == 2
    assert round_half_up(10 * 35 / 100) == 4
    assert round_half_up(7 * 50 / 100) == 4


def test_validate_rejects_bad_sums():
    with pytest.raises(ConfigurationError):
        validate_config(SelectorConfig(difficulty_distribution=DifficultyDistribution(easy=30, medium=30, hard=30)), 1.0)
    with pytest.raises(ConfigurationError):
        validate_config(SelectorConfig(question_types=QuestionTypeDistribution(MCQ=90, Coding=20, TrueFalse=0)), 1.0)
    validate_config(SelectorConfig(difficulty_distribution=DifficultyDistribution(easy=33.3, medium=33.3, hard=33.3)), 1.0)


def test_validate_rejects_negative_window():
    config = SelectorConfig().model_copy(update={"recent_question_days": -1})
    with pytest.raises(ConfigurationError):
        validate_config(config, 1.0)
