import pytest

from assessment.models.schemas import DifficultyDistribution, HistoryUpdate, LearnerHistory, Performance
from assessment.services.adaptive import DifficultyAdviser, recommend_distribution, weak_categories


@pytest.mark.parametrize("attempted,correct,expected", [
    (20, 17, DifficultyDistribution(easy=10, medium=40, hard=50)),
    (20, 16, DifficultyDistribution(easy=10, medium=40, hard=50)),
    (20, 12, DifficultyDistribution(easy=25, medium=50, hard=25)),
    (20, 11, DifficultyDistribution(easy=50, medium=40, hard=10)),
    (9, 9, DifficultyDistribution(easy=30, medium=50, hard=20)),
    (0, 0, DifficultyDistribution(easy=30, medium=50, hard=20)),
])
def test_recommended_mix(attempted, correct, expected):
    history = LearnerHistory(learner_id="l", total_questions_attempted=attempted, correct_answers=correct)
    assert recommend_distribution(history) == expected


def test_weak_categories_need_enough_attempts():
    history = LearnerHistory(
        learner_id="l",
        category_performance={
            "Python": Performance(attempted=4, correct=1),
            "SQL": Performance(attempted=2, correct=0),
            "DSA": Performance(attempted=5, correct=4),
        },
    )
    assert weak_categories(history) == {"Python"}


def test_adviser_reads_stored_history(tracker):
    updates = [
        HistoryUpdate(question_id=i, category="Python", difficulty="easy", answered_correctly=i < 17)
        for i in range(20)
    ]
    tracker.commit("strong", updates)
    adviser = DifficultyAdviser(tracker)
    assert adviser.get_adaptive_difficulty("strong") == DifficultyDistribution(easy=10, medium=40, hard=50)
    assert adviser.get_adaptive_difficulty("fresh") == DifficultyDistribution(easy=30, medium=50, hard=20)
    assert adviser.get_weak_categories("strong") == set()
