"""
Question bank access for the selector: filtered random sampling, persistence
of generated questions, and question pool lookup.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from assessment.core.errors import PoolNotFound
from assessment.models.orm import PoolQuestion, QuestionPoolRecord, QuestionRecord
from assessment.models.schemas import (
    Difficulty,
    PoolConfig,
    Question,
    QuestionDraft,
    QuestionPool,
    QuestionType,
)
from assessment.services.validation import check_difficulty_distribution, check_type_distribution

logger = logging.getLogger(__name__)


@dataclass
class QuestionFilter:
    """Criteria for one sampling call."""
    difficulty: Difficulty
    question_type: QuestionType
    exclude_ids: Set[int] = field(default_factory=set)
    categories: Optional[Sequence[str]] = None
    pool_question_ids: Optional[Set[int]] = None


class QuestionStore(Protocol):
    def sample(self, criteria: QuestionFilter, n: int) -> List[Question]: ...

    def persist(self, draft: QuestionDraft) -> Question: ...

    def get_pool(self, pool_id: int) -> Optional[QuestionPool]: ...

    def get_default_pool(self) -> Optional[QuestionPool]: ...


def _to_question(rec: QuestionRecord) -> Question:
    return Question.model_validate(rec)


def _draft_columns(draft: QuestionDraft) -> Dict:
    return draft.model_dump(mode="json", include=set(QuestionDraft.model_fields))


class SqlQuestionStore:
    """Question store backed by the relational question bank."""

    def __init__(self, session_factory: sessionmaker, distribution_tolerance: float = 1.0):
        self._session_factory = session_factory
        self._tolerance = distribution_tolerance

    # ============= Questions =============

    def sample(self, criteria: QuestionFilter, n: int) -> List[Question]:
        """Up to ``n`` distinct matching questions in random order."""
        if n <= 0:
            return []
        stmt = select(QuestionRecord).where(
            QuestionRecord.difficulty == criteria.difficulty.value,
            QuestionRecord.question_type == criteria.question_type.value,
            QuestionRecord.is_active.is_(True),
        )
        if criteria.exclude_ids:
            stmt = stmt.where(QuestionRecord.id.not_in(criteria.exclude_ids))
        if criteria.categories:
            stmt = stmt.where(QuestionRecord.category.in_(list(criteria.categories)))
        if criteria.pool_question_ids:
            stmt = stmt.where(QuestionRecord.id.in_(criteria.pool_question_ids))
        stmt = stmt.order_by(func.random()).limit(n)
        with self._session_factory() as db:
            return [_to_question(r) for r in db.scalars(stmt).all()]

    def persist(self, draft: QuestionDraft) -> Question:
        """Save a generated draft; an identical question already in the bank is reused."""
        with self._session_factory() as db, db.begin():
            existing = db.scalar(
                select(QuestionRecord).where(
                    QuestionRecord.question_text == draft.question_text,
                    QuestionRecord.question_type == draft.question_type.value,
                ).limit(1)
            )
            if existing is not None:
                return _to_question(existing)
            rec = QuestionRecord(**_draft_columns(draft), is_active=True)
            db.add(rec)
            db.flush()
            return _to_question(rec)

    def add_question(self, draft: QuestionDraft, is_active: bool = True) -> Question:
        with self._session_factory() as db, db.begin():
            rec = QuestionRecord(**_draft_columns(draft), is_active=is_active)
            db.add(rec)
            db.flush()
            return _to_question(rec)

    def get_questions(self, ids: Sequence[int]) -> List[Question]:
        """Questions for ``ids`` in the given order; unknown ids are skipped."""
        if not ids:
            return []
        with self._session_factory() as db:
            rows = db.scalars(select(QuestionRecord).where(QuestionRecord.id.in_(list(ids)))).all()
        by_id = {r.id: _to_question(r) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    # ============= Pools =============

    def _pool_question_ids(self, db: Session, pool_id: int) -> List[int]:
        return list(db.scalars(select(PoolQuestion.question_id).where(PoolQuestion.pool_id == pool_id)).all())

    def _to_pool(self, db: Session, rec: QuestionPoolRecord) -> QuestionPool:
        return QuestionPool(
            id=rec.id,
            name=rec.name,
            description=rec.description,
            config=PoolConfig.model_validate(rec.config or {}),
            question_ids=self._pool_question_ids(db, rec.id),
            is_active=rec.is_active,
            is_default=rec.is_default,
        )

    def get_pool(self, pool_id: int) -> Optional[QuestionPool]:
        with self._session_factory() as db:
            rec = db.get(QuestionPoolRecord, pool_id)
            return self._to_pool(db, rec) if rec else None

    def get_default_pool(self) -> Optional[QuestionPool]:
        with self._session_factory() as db:
            rec = db.scalar(
                select(QuestionPoolRecord)
                .where(QuestionPoolRecord.is_default.is_(True), QuestionPoolRecord.is_active.is_(True))
                .limit(1)
            )
            return self._to_pool(db, rec) if rec else None

    def list_pools(self) -> List[QuestionPool]:
        with self._session_factory() as db:
            recs = db.scalars(select(QuestionPoolRecord).order_by(QuestionPoolRecord.id)).all()
            return [self._to_pool(db, r) for r in recs]

    def create_pool(
        self,
        name: str,
        config: Optional[PoolConfig] = None,
        question_ids: Iterable[int] = (),
        description: Optional[str] = None,
        is_default: bool = False,
        is_active: bool = True,
        created_by: Optional[str] = None,
    ) -> QuestionPool:
        config = config or PoolConfig()
        check_difficulty_distribution(config.difficulty_distribution, self._tolerance)
        check_type_distribution(config.question_type_distribution, self._tolerance)
        with self._session_factory() as db, db.begin():
            if is_default:
                self._clear_default(db)
            rec = QuestionPoolRecord(
                name=name,
                description=description,
                config=config.model_dump(mode="json"),
                is_active=is_active,
                is_default=is_default,
                created_by=created_by,
            )
            db.add(rec)
            db.flush()
            for qid in dict.fromkeys(question_ids):
                db.add(PoolQuestion(pool_id=rec.id, question_id=qid))
            db.flush()
            return self._to_pool(db, rec)

    def set_default_pool(self, pool_id: int) -> QuestionPool:
        """Mark ``pool_id`` as the default and unset every other pool, atomically."""
        with self._session_factory() as db, db.begin():
            rec = db.get(QuestionPoolRecord, pool_id)
            if rec is None:
                raise PoolNotFound(f"pool {pool_id} not found")
            self._clear_default(db)
            db.execute(update(QuestionPoolRecord).where(QuestionPoolRecord.id == pool_id).values(is_default=True))
            db.refresh(rec)
            logger.info(f"Pool {pool_id} ({rec.name}) is now the default pool")
            return self._to_pool(db, rec)

    @staticmethod
    def _clear_default(db: Session) -> None:
        db.execute(
            update(QuestionPoolRecord).where(QuestionPoolRecord.is_default.is_(True)).values(is_default=False)
        )
