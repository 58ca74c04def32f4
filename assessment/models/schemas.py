"""
Domain types shared by the selector, sandbox and grader.
"""
import enum
from datetime import datetime, timezone
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class QuestionType(str, enum.Enum):
    MCQ = "MCQ"
    CODING = "Coding"
    TRUE_FALSE = "TrueFalse"
    FILL_IN_BLANK = "FillInBlank"


OBJECTIVE_TYPES = frozenset({QuestionType.MCQ, QuestionType.TRUE_FALSE, QuestionType.FILL_IN_BLANK})


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


DIFFICULTY_POINTS = {Difficulty.EASY: 1, Difficulty.MEDIUM: 2, Difficulty.HARD: 3}


class AssessmentStatus(str, enum.Enum):
    ASSIGNED = "Assigned"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    EXPIRED = "Expired"
    TERMINATED = "Terminated"


OPEN_STATUSES = frozenset({AssessmentStatus.ASSIGNED, AssessmentStatus.IN_PROGRESS})


# ============= Questions =============

class CodeTestCase(BaseModel):
    """One input/expected-output pair for a coding question.

    ``input`` is argument source text for the entry point, e.g. ``"hello"``
    or ``[1, 2], 3``; ``output`` is the expected return value as a literal.
    """
    model_config = ConfigDict(populate_by_name=True)

    input: str = ""
    output: str
    hidden: bool = Field(default=False, validation_alias=AliasChoices("hidden", "isHidden"))


class QuestionDraft(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_type: QuestionType
    difficulty: Difficulty
    category: str = "General"
    question_text: str
    options: List[str] = Field(default_factory=list)
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    test_cases: List[CodeTestCase] = Field(default_factory=list)
    starter_code: Optional[str] = None
    sample_input: Optional[str] = None
    sample_output: Optional[str] = None
    points: Optional[int] = Field(default=None, ge=1)
    is_ai_generated: bool = False

    @model_validator(mode="after")
    def default_points(self):
        if self.points is None:
            self.points = DIFFICULTY_POINTS[self.difficulty]
        return self


class Question(QuestionDraft):
    id: int
    is_active: bool = True


# ============= Distributions & pools =============

class DifficultyDistribution(BaseModel):
    easy: float = Field(default=30, ge=0)
    medium: float = Field(default=50, ge=0)
    hard: float = Field(default=20, ge=0)

    def total(self) -> float:
        return self.easy + self.medium + self.hard

    def weight(self, difficulty: Difficulty) -> float:
        return getattr(self, difficulty.value)


class QuestionTypeDistribution(BaseModel):
    MCQ: float = Field(default=70, ge=0)
    Coding: float = Field(default=20, ge=0)
    TrueFalse: float = Field(default=10, ge=0)
    FillInBlank: float = Field(default=0, ge=0)

    def total(self) -> float:
        return self.MCQ + self.Coding + self.TrueFalse + self.FillInBlank

    def weight(self, question_type: QuestionType) -> float:
        return getattr(self, question_type.value)


class PoolConfig(BaseModel):
    questions_per_test: int = Field(default=5, ge=1)
    difficulty_distribution: DifficultyDistribution = Field(default_factory=DifficultyDistribution)
    categories: List[str] = Field(default_factory=list)
    question_type_distribution: QuestionTypeDistribution = Field(default_factory=QuestionTypeDistribution)
    time_limit: int = Field(default=1800, ge=1)
    passing_percentage: float = Field(default=60, ge=0, le=100)


class QuestionPool(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    config: PoolConfig = Field(default_factory=PoolConfig)
    question_ids: List[int] = Field(default_factory=list)
    is_active: bool = True
    is_default: bool = False


class SelectorConfig(BaseModel):
    total_questions: int = Field(default=7, ge=0)
    difficulty_distribution: DifficultyDistribution = Field(default_factory=DifficultyDistribution)
    question_types: QuestionTypeDistribution = Field(default_factory=QuestionTypeDistribution)
    categories: Optional[List[str]] = None
    avoid_recent_questions: bool = True
    recent_question_days: int = Field(default=30, ge=0)
    generate_if_needed: bool = True
    pool_id: Optional[int] = None
    topic: Optional[str] = None

    @classmethod
    def from_pool(cls, pool: QuestionPool, **overrides) -> "SelectorConfig":
        """Selector settings seeded from a pool's configuration."""
        values = {
            "total_questions": pool.config.questions_per_test,
            "difficulty_distribution": pool.config.difficulty_distribution,
            "question_types": pool.config.question_type_distribution,
            "categories": pool.config.categories or None,
            "pool_id": pool.id,
        }
        values.update(overrides)
        return cls(**values)


# ============= History =============

class Performance(BaseModel):
    attempted: int = 0
    correct: int = 0

    @property
    def accuracy(self) -> float:
        return self.correct / self.attempted if self.attempted else 0.0


class SeenEntry(BaseModel):
    question_id: int
    test_id: Optional[int] = None
    seen_at: datetime
    answered_correctly: Optional[bool] = None


class LearnerHistory(BaseModel):
    learner_id: str
    seen: List[SeenEntry] = Field(default_factory=list)
    total_questions_attempted: int = 0
    correct_answers: int = 0
    category_performance: Dict[str, Performance] = Field(default_factory=dict)
    difficulty_performance: Dict[str, Performance] = Field(default_factory=dict)

    @property
    def overall_accuracy(self) -> float:
        if not self.total_questions_attempted:
            return 0.0
        return self.correct_answers / self.total_questions_attempted


class HistoryUpdate(BaseModel):
    question_id: int
    test_id: Optional[int] = None
    category: str
    difficulty: str
    answered_correctly: bool
    seen_at: datetime = Field(default_factory=utcnow)


# ============= Submissions =============

class ObjectiveAnswer(BaseModel):
    kind: Literal["objective"] = "objective"
    value: str


class CodeAnswer(BaseModel):
    kind: Literal["code"] = "code"
    source: str
    language: Literal["python"] = "python"


Answer = Annotated[Union[ObjectiveAnswer, CodeAnswer], Field(discriminator="kind")]


class SubmittedAnswer(BaseModel):
    question_id: int
    answer: Answer


class SubmissionIn(BaseModel):
    answers: List[SubmittedAnswer] = Field(default_factory=list)
    tab_switch_count: int = Field(default=0, ge=0)


class AssessmentConfig(BaseModel):
    total_time_limit: int = Field(default=1800, ge=1)
    passing_percentage: float = Field(default=60, ge=0, le=100)
    shuffle_questions: bool = True
    shuffle_options: bool = True
    show_result_immediately: bool = True
    allow_review: bool = False
    max_tab_switches: int = Field(default=3, ge=0)


class Assessment(BaseModel):
    id: int
    learner_id: str
    questions: List[Question]
    config: AssessmentConfig = Field(default_factory=AssessmentConfig)
    score: int = 0
    status: AssessmentStatus = AssessmentStatus.ASSIGNED
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    expires_at: Optional[datetime] = None


# ============= Execution & grading =============

class ExecutionStatus(str, enum.Enum):
    OK = "ok"
    ERROR = "error"
    TIMEOUT = "timeout"
    RESOURCE_LIMIT = "resource_limit"


class ExecutionResult(BaseModel):
    status: ExecutionStatus
    output: Optional[str] = None  # repr() of the entry point's return value
    stdout: str = ""
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.OK


class CaseResult(BaseModel):
    passed: bool
    status: ExecutionStatus
    hidden: bool = False
    output: Optional[str] = None
    expected: Optional[str] = None
    stdout: str = ""
    error: Optional[str] = None
    duration_ms: int = 0


class QuestionOutcome(BaseModel):
    question_id: int
    question_type: QuestionType
    category: str
    difficulty: Difficulty
    answered: bool
    correct: bool
    cases_run: int = 0
    infrastructure_error: bool = False


class GradeResult(BaseModel):
    score: int
    is_passed: bool
    total_questions: int
    outcomes: List[QuestionOutcome] = Field(default_factory=list)

    @property
    def infrastructure_errors(self) -> int:
        return sum(1 for o in self.outcomes if o.infrastructure_error)


# ============= Learner-facing views =============

class LearnerQuestion(BaseModel):
    """A question as shown while the assessment is being taken: no answers, no hidden cases."""
    id: int
    question_type: QuestionType
    difficulty: Difficulty
    category: str
    question_text: str
    options: List[str] = Field(default_factory=list)
    starter_code: Optional[str] = None
    sample_input: Optional[str] = None
    sample_output: Optional[str] = None
    test_cases: List[CodeTestCase] = Field(default_factory=list)
    points: int


class AssessmentView(BaseModel):
    id: int
    status: AssessmentStatus
    config: AssessmentConfig
    questions: List[LearnerQuestion]
    start_time: Optional[datetime] = None
    expires_at: Optional[datetime] = None
