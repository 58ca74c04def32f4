from datetime import datetime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import BigInteger, Integer, String, Text, Boolean, ForeignKey, JSON, DateTime, Index, UniqueConstraint, func, text

# SQLite only autoincrements INTEGER PRIMARY KEY
BigId = BigInteger().with_variant(Integer, "sqlite")

class Base(DeclarativeBase): pass

class QuestionRecord(Base):
    __tablename__ = "questions"
    __table_args__ = (Index("ix_questions_selection", "difficulty", "question_type", "is_active"),)
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    question_type: Mapped[str] = mapped_column(String(20))
    difficulty: Mapped[str] = mapped_column(String(10))
    category: Mapped[str] = mapped_column(String, index=True, default="General")
    question_text: Mapped[str] = mapped_column(Text)
    options: Mapped[list] = mapped_column(JSON, default=list)
    correct_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    test_cases: Mapped[list] = mapped_column(JSON, default=list)
    starter_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    sample_input: Mapped[str | None] = mapped_column(Text, nullable=True)
    sample_output: Mapped[str | None] = mapped_column(Text, nullable=True)
    points: Mapped[int] = mapped_column(Integer, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_ai_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

class QuestionPoolRecord(Base):
    __tablename__ = "question_pools"
    __table_args__ = (
        Index("uq_question_pools_default", "is_default", unique=True,
              postgresql_where=text("is_default"), sqlite_where=text("is_default")),
    )
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    config: Mapped[dict] = mapped_column(JSON, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

class PoolQuestion(Base):
    __tablename__ = "pool_questions"
    pool_id: Mapped[int] = mapped_column(BigId, ForeignKey("question_pools.id", ondelete="CASCADE"), primary_key=True)
    question_id: Mapped[int] = mapped_column(BigId, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True)

class StudentQuestionHistory(Base):
    __tablename__ = "student_question_histories"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    learner_id: Mapped[str] = mapped_column(String, unique=True)
    total_questions_attempted: Mapped[int] = mapped_column(Integer, default=0)
    correct_answers: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class SeenQuestion(Base):
    __tablename__ = "seen_questions"
    __table_args__ = (Index("ix_seen_questions_recent", "history_id", "seen_at"),)
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    history_id: Mapped[int] = mapped_column(BigId, ForeignKey("student_question_histories.id", ondelete="CASCADE"))
    question_id: Mapped[int] = mapped_column(BigId, index=True)
    test_id: Mapped[int | None] = mapped_column(BigId, nullable=True)
    seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    answered_correctly: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

class PerformanceStat(Base):
    """Keyed aggregate row: axis is "category" or "difficulty", tag is the key."""
    __tablename__ = "performance_stats"
    history_id: Mapped[int] = mapped_column(BigId, ForeignKey("student_question_histories.id", ondelete="CASCADE"), primary_key=True)
    axis: Mapped[str] = mapped_column(String(16), primary_key=True)
    tag: Mapped[str] = mapped_column(String, primary_key=True)
    attempted: Mapped[int] = mapped_column(Integer, default=0)
    correct: Mapped[int] = mapped_column(Integer, default=0)

class AssessmentRecord(Base):
    __tablename__ = "assessments"
    __table_args__ = (Index("ix_assessments_learner_status", "learner_id", "status"),)
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    learner_id: Mapped[str] = mapped_column(String)
    config: Mapped[dict] = mapped_column(JSON, default=dict)
    score: Mapped[int] = mapped_column(Integer, default=0)
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default="Assigned")
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

class AssessmentItem(Base):
    __tablename__ = "assessment_items"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    assessment_id: Mapped[int] = mapped_column(BigId, ForeignKey("assessments.id", ondelete="CASCADE"), index=True)
    question_id: Mapped[int] = mapped_column(BigId, ForeignKey("questions.id"))
    position: Mapped[int] = mapped_column(Integer)

class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (UniqueConstraint("assessment_id", name="uq_submission_assessment"),)
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    assessment_id: Mapped[int] = mapped_column(BigId, ForeignKey("assessments.id"))
    learner_id: Mapped[str] = mapped_column(String, index=True)
    answers: Mapped[list] = mapped_column(JSON, default=list)
    score: Mapped[int] = mapped_column(Integer)
    total_questions: Mapped[int] = mapped_column(Integer)
    is_passed: Mapped[bool] = mapped_column(Boolean, default=False)
    tab_switch_count: Mapped[int] = mapped_column(Integer, default=0)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
