from typing import Set

from assessment.models.schemas import DifficultyDistribution, LearnerHistory
from assessment.services.history import HistoryTracker

MIN_ATTEMPTS = 10
WEAK_MIN_ATTEMPTS = 3
WEAK_ACCURACY = 0.5

DEFAULT_MIX = DifficultyDistribution(easy=30, medium=50, hard=20)
STRONG_MIX = DifficultyDistribution(easy=10, medium=40, hard=50)
STEADY_MIX = DifficultyDistribution(easy=25, medium=50, hard=25)
REMEDIAL_MIX = DifficultyDistribution(easy=50, medium=40, hard=10)


def recommend_distribution(history: LearnerHistory) -> DifficultyDistribution:
    """Difficulty mix from overall accuracy; new learners get the default mix."""
    if history.total_questions_attempted < MIN_ATTEMPTS:
        return DEFAULT_MIX.model_copy()
    acc = history.overall_accuracy
    if acc >= 0.8: return STRONG_MIX.model_copy()
    if acc >= 0.6: return STEADY_MIX.model_copy()
    return REMEDIAL_MIX.model_copy()


def weak_categories(history: LearnerHistory) -> Set[str]:
    return {
        tag for tag, perf in history.category_performance.items()
        if perf.attempted >= WEAK_MIN_ATTEMPTS and perf.accuracy < WEAK_ACCURACY
    }


class DifficultyAdviser:
    def __init__(self, tracker: HistoryTracker):
        self.tracker = tracker

    def get_adaptive_difficulty(self, learner_id: str) -> DifficultyDistribution:
        return recommend_distribution(self.tracker.load(learner_id))

    def get_weak_categories(self, learner_id: str) -> Set[str]:
        return weak_categories(self.tracker.load(learner_id))
