from typing import Mapping

from assessment.core.errors import ConfigurationError
from assessment.models.schemas import DifficultyDistribution, QuestionTypeDistribution


def check_percentages(name: str, values: Mapping[str, float], tolerance: float) -> None:
    """Reject negative shares and totals that are not 100 within ``tolerance``."""
    negative = [k for k, v in values.items() if v < 0]
    if negative:
        raise ConfigurationError(f"{name}: negative percentage for {', '.join(sorted(negative))}")
    total = sum(values.values())
    if abs(total - 100) > tolerance:
        raise ConfigurationError(f"{name}: percentages sum to {total:g}, expected 100")


def check_difficulty_distribution(dist: DifficultyDistribution, tolerance: float) -> None:
    check_percentages("difficulty_distribution", dist.model_dump(), tolerance)


def check_type_distribution(dist: QuestionTypeDistribution, tolerance: float) -> None:
    check_percentages("question_types", dist.model_dump(), tolerance)
