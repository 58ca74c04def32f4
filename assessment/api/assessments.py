from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional
from assessment.api.deps import get_services
from assessment.core.auth import require_roles, TokenData
from assessment.core.errors import PoolNotFound
from assessment.models.schemas import (
    AssessmentConfig, AssessmentStatus, AssessmentView, CaseResult, CodeTestCase, Difficulty,
    DifficultyDistribution, QuestionType, QuestionTypeDistribution, SelectorConfig, SubmissionIn,
)
from assessment.services.container import Services
from assessment.services.templates import CATEGORIES

router = APIRouter()

SELECTOR_FIELDS = {
    "total_questions", "difficulty_distribution", "question_types", "categories",
    "avoid_recent_questions", "recent_question_days", "generate_if_needed", "topic",
}

class AssessmentCreate(BaseModel):
    learner_id: Optional[str] = None
    total_questions: Optional[int] = Field(default=None, ge=1, le=100)
    difficulty_distribution: Optional[DifficultyDistribution] = None
    question_types: Optional[QuestionTypeDistribution] = None
    categories: Optional[List[str]] = None
    avoid_recent_questions: Optional[bool] = None
    recent_question_days: Optional[int] = Field(default=None, ge=0)
    generate_if_needed: Optional[bool] = None
    pool_id: Optional[int] = None
    topic: Optional[str] = None
    adaptive: bool = False
    config: Optional[AssessmentConfig] = None

class AssessmentCreated(BaseModel):
    assessment_id: int
    question_ids: List[int]
    requested: int
    status: AssessmentStatus

class SubmitResult(BaseModel):
    score: int
    is_passed: bool
    total_questions: int

class RunCodeIn(BaseModel):
    code: str = Field(min_length=1, max_length=50_000)
    test_cases: List[CodeTestCase] = Field(default_factory=list, max_length=20)
    question_id: Optional[int] = None

class RunCodeOut(BaseModel):
    results: List[CaseResult]
    passed: int
    total: int

def build_selector_config(payload: AssessmentCreate, services: Services):
    """Selector settings: request fields over the bound pool's config over service defaults."""
    settings = services.settings
    overrides = payload.model_dump(exclude_none=True, include=SELECTOR_FIELDS)
    if payload.pool_id is not None:
        pool = services.store.get_pool(payload.pool_id)
        if pool is None: raise PoolNotFound(f"pool {payload.pool_id} not found")
    else:
        pool = services.store.get_default_pool()
    base = {"recent_question_days": settings.DEFAULT_RECENT_QUESTION_DAYS}
    if pool is not None:
        return SelectorConfig.from_pool(pool, **{**base, **overrides}), pool
    base["total_questions"] = settings.DEFAULT_TOTAL_QUESTIONS
    return SelectorConfig(**{**base, **overrides}), None

@router.post("", response_model=AssessmentCreated, status_code=201)
def create_assessment(payload: AssessmentCreate, user: TokenData = Depends(require_roles("student","admin")),
                      services: Services = Depends(get_services)):
    learner_id = payload.learner_id or user.sub
    if learner_id != user.sub and not user.is_admin:
        raise HTTPException(403, "Cannot assign assessments to other learners")
    selector_config, pool = build_selector_config(payload, services)
    config = payload.config or services.assessments.default_config(pool)
    assessment = services.assessments.assemble(learner_id, selector_config, config, adaptive=payload.adaptive)
    return AssessmentCreated(assessment_id=assessment.id, question_ids=[q.id for q in assessment.questions],
                             requested=selector_config.total_questions, status=assessment.status)

@router.get("/config-options", dependencies=[Depends(require_roles("student","admin"))])
def config_options(services: Services = Depends(get_services)):
    s = services.settings
    return {
        "categories": CATEGORIES,
        "question_types": [t.value for t in QuestionType],
        "difficulties": [d.value for d in Difficulty],
        "defaults": {
            "total_questions": s.DEFAULT_TOTAL_QUESTIONS,
            "difficulty_distribution": DifficultyDistribution().model_dump(),
            "question_types": QuestionTypeDistribution().model_dump(),
            "recent_question_days": s.DEFAULT_RECENT_QUESTION_DAYS,
            "total_time_limit": s.DEFAULT_TIME_LIMIT,
            "passing_percentage": s.DEFAULT_PASSING_PERCENTAGE,
            "max_tab_switches": s.DEFAULT_MAX_TAB_SWITCHES,
        },
    }

@router.post("/run-code", response_model=RunCodeOut)
async def run_code(payload: RunCodeIn, user: TokenData = Depends(require_roles("student","admin")),
                   services: Services = Depends(get_services)):
    if not payload.test_cases and payload.question_id is None:
        raise HTTPException(400, "Provide test_cases or question_id")
    results = await services.assessments.run_code(payload.code, payload.test_cases, payload.question_id)
    return RunCodeOut(results=results, passed=sum(1 for r in results if r.passed), total=len(results))

@router.get("/{assessment_id}", response_model=AssessmentView)
def start_assessment(assessment_id: int, user: TokenData = Depends(require_roles("student","admin")),
                     services: Services = Depends(get_services)):
    return services.assessments.start(assessment_id, user.sub)

@router.post("/{assessment_id}/submit", response_model=SubmitResult)
async def submit_assessment(assessment_id: int, payload: SubmissionIn,
                            user: TokenData = Depends(require_roles("student","admin")),
                            services: Services = Depends(get_services)):
    result = await services.assessments.submit(assessment_id, user.sub, payload)
    return SubmitResult(score=result.score, is_passed=result.is_passed, total_questions=result.total_questions)
