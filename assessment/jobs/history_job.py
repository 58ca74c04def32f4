import logging
from typing import List, Optional

from rq import get_current_job
from sqlalchemy.engine import Engine

from assessment.core.config import get_settings
from assessment.core.database import build_engine, build_session_factory
from assessment.services.history import HistoryTracker, updates_from_payload

logger = logging.getLogger(__name__)


def commit_history_job(learner_id: str, payload: List[dict], engine: Optional[Engine] = None) -> int:
    """Re-apply a history batch whose commit failed after grading.

    Raises on failure so rq's retry policy applies.
    """
    job = get_current_job()
    if job is not None:
        job.meta.update({"state": "running", "learner_id": learner_id}); job.save_meta()
    owned = engine is None
    engine = engine or build_engine(get_settings())
    try:
        updates = updates_from_payload(payload)
        HistoryTracker(build_session_factory(engine)).commit(learner_id, updates)
    except Exception:
        if job is not None:
            job.meta.update({"state": "failed"}); job.save_meta()
        raise
    finally:
        if owned:
            engine.dispose()
    if job is not None:
        job.meta.update({"state": "done"}); job.save_meta()
    logger.info(f"Committed {len(updates)} queued history updates for learner {learner_id}")
    return len(updates)
