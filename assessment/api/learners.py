from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Dict, List
from assessment.api.deps import get_services
from assessment.core.auth import require_roles, TokenData
from assessment.models.schemas import DifficultyDistribution, Performance
from assessment.services.adaptive import recommend_distribution, weak_categories
from assessment.services.container import Services

router = APIRouter()

class LearnerInsights(BaseModel):
    learner_id: str
    total_questions_attempted: int
    correct_answers: int
    overall_accuracy: float
    recommended_distribution: DifficultyDistribution
    weak_categories: List[str]
    category_performance: Dict[str, Performance]
    difficulty_performance: Dict[str, Performance]

@router.get("/{learner_id}/insights", response_model=LearnerInsights)
def learner_insights(learner_id: str, user: TokenData = Depends(require_roles("student","admin")),
                     services: Services = Depends(get_services)):
    if learner_id != user.sub and not user.is_admin:
        raise HTTPException(403, "Cannot view another learner's insights")
    history = services.tracker.load(learner_id)
    return LearnerInsights(
        learner_id=learner_id,
        total_questions_attempted=history.total_questions_attempted,
        correct_answers=history.correct_answers,
        overall_accuracy=round(history.overall_accuracy, 4),
        recommended_distribution=recommend_distribution(history),
        weak_categories=sorted(weak_categories(history)),
        category_performance=history.category_performance,
        difficulty_performance=history.difficulty_performance,
    )
