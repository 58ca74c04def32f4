"""
Per-learner question history.

Keeps the append-only log of seen questions plus the running totals and the
keyed per-category / per-difficulty aggregates used for exclusion windows
and adaptive difficulty. Records are created lazily and never deleted.
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from assessment.core.errors import HistoryPersistenceError
from assessment.models.orm import PerformanceStat, SeenQuestion, StudentQuestionHistory
from assessment.models.schemas import HistoryUpdate, LearnerHistory, Performance, SeenEntry, as_utc, utcnow

logger = logging.getLogger(__name__)

CATEGORY_AXIS = "category"
DIFFICULTY_AXIS = "difficulty"


def aggregate_updates(updates: Sequence[HistoryUpdate]) -> Dict[Tuple[str, str], Tuple[int, int]]:
    """Fold a batch into ``{(axis, tag): (attempted, correct)}`` increments."""
    totals: Dict[Tuple[str, str], List[int]] = defaultdict(lambda: [0, 0])
    for u in updates:
        for key in ((CATEGORY_AXIS, u.category), (DIFFICULTY_AXIS, u.difficulty)):
            totals[key][0] += 1
            if u.answered_correctly:
                totals[key][1] += 1
    return {k: (v[0], v[1]) for k, v in totals.items()}


def updates_to_payload(updates: Sequence[HistoryUpdate]) -> List[dict]:
    return [u.model_dump(mode="json") for u in updates]


def updates_from_payload(payload: Sequence[dict]) -> List[HistoryUpdate]:
    return [HistoryUpdate.model_validate(item) for item in payload]


class HistoryTracker:
    """Reads and atomically updates learner history records."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _get_or_create(self, db: Session, learner_id: str, lock: bool = False) -> StudentQuestionHistory:
        stmt = select(StudentQuestionHistory).where(StudentQuestionHistory.learner_id == learner_id)
        if lock:
            stmt = stmt.with_for_update()
        rec = db.scalar(stmt)
        if rec is not None:
            return rec
        rec = StudentQuestionHistory(learner_id=learner_id, total_questions_attempted=0, correct_answers=0)
        try:
            with db.begin_nested():
                db.add(rec)
        except IntegrityError:
            # created concurrently by another request
            rec = db.scalar(stmt)
        return rec

    def load(self, learner_id: str) -> LearnerHistory:
        with self._session_factory() as db, db.begin():
            rec = self._get_or_create(db, learner_id)
            seen = db.scalars(
                select(SeenQuestion)
                .where(SeenQuestion.history_id == rec.id)
                .order_by(SeenQuestion.seen_at, SeenQuestion.id)
            ).all()
            stats = db.scalars(select(PerformanceStat).where(PerformanceStat.history_id == rec.id)).all()
            history = LearnerHistory(
                learner_id=learner_id,
                total_questions_attempted=rec.total_questions_attempted,
                correct_answers=rec.correct_answers,
                seen=[
                    SeenEntry(
                        question_id=s.question_id,
                        test_id=s.test_id,
                        seen_at=as_utc(s.seen_at),
                        answered_correctly=s.answered_correctly,
                    )
                    for s in seen
                ],
            )
            for stat in stats:
                target = history.category_performance if stat.axis == CATEGORY_AXIS else history.difficulty_performance
                target[stat.tag] = Performance(attempted=stat.attempted, correct=stat.correct)
            return history

    def recently_seen_ids(self, learner_id: str, days: int, now: Optional[datetime] = None) -> Set[int]:
        """Question ids the learner saw within the last ``days`` days."""
        if days <= 0:
            return set()
        cutoff = (now or utcnow()) - timedelta(days=days)
        with self._session_factory() as db, db.begin():
            rec = self._get_or_create(db, learner_id)
            rows = db.scalars(
                select(SeenQuestion.question_id)
                .where(SeenQuestion.history_id == rec.id, SeenQuestion.seen_at > cutoff)
                .distinct()
            ).all()
        return set(rows)

    def commit(self, learner_id: str, updates: Sequence[HistoryUpdate]) -> None:
        """Apply a batch of updates as a single transaction.

        Seen-question entries, the overall totals and every keyed aggregate
        land together or not at all. The learner row is locked for the
        duration so concurrent batches for the same learner serialize.
        """
        if not updates:
            return
        correct = sum(1 for u in updates if u.answered_correctly)
        try:
            with self._session_factory() as db, db.begin():
                rec = self._get_or_create(db, learner_id, lock=True)
                for u in updates:
                    db.add(SeenQuestion(
                        history_id=rec.id,
                        question_id=u.question_id,
                        test_id=u.test_id,
                        seen_at=u.seen_at,
                        answered_correctly=u.answered_correctly,
                    ))
                db.execute(
                    update(StudentQuestionHistory)
                    .where(StudentQuestionHistory.id == rec.id)
                    .values(
                        total_questions_attempted=StudentQuestionHistory.total_questions_attempted + len(updates),
                        correct_answers=StudentQuestionHistory.correct_answers + correct,
                    )
                    .execution_options(synchronize_session=False)
                )
                for (axis, tag), (attempted, n_correct) in aggregate_updates(updates).items():
                    self._increment(db, rec.id, axis, tag, attempted, n_correct)
        except SQLAlchemyError as e:
            raise HistoryPersistenceError(f"history commit failed for learner {learner_id}") from e

    def _increment(self, db: Session, history_id: int, axis: str, tag: str, attempted: int, correct: int) -> None:
        """Get-or-default-then-increment for one keyed aggregate, in one statement."""
        result = db.execute(
            update(PerformanceStat)
            .where(PerformanceStat.history_id == history_id, PerformanceStat.axis == axis, PerformanceStat.tag == tag)
            .values(attempted=PerformanceStat.attempted + attempted, correct=PerformanceStat.correct + correct)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.add(PerformanceStat(history_id=history_id, axis=axis, tag=tag, attempted=attempted, correct=correct))
            db.flush()
