import logging
from typing import Optional, Sequence

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry

from assessment.core.config import Settings
from assessment.models.schemas import HistoryUpdate
from assessment.services.history import updates_to_payload

logger = logging.getLogger(__name__)

HISTORY_JOB = "assessment.jobs.history_job.commit_history_job"
RETRY_INTERVALS = [10, 60, 300]


class HistoryRetryQueue:
    """Hands failed history batches to an rq worker for another attempt."""

    def __init__(self, queue: Queue):
        self.queue = queue

    @classmethod
    def from_settings(cls, settings: Settings) -> "HistoryRetryQueue":
        redis = Redis.from_url(settings.REDIS_URL)
        return cls(Queue(settings.RQ_QUEUE, connection=redis))

    def enqueue_history(self, learner_id: str, updates: Sequence[HistoryUpdate]) -> Optional[str]:
        try:
            job = self.queue.enqueue(
                HISTORY_JOB,
                learner_id,
                updates_to_payload(updates),
                retry=Retry(max=len(RETRY_INTERVALS), interval=RETRY_INTERVALS),
            )
        except RedisError as e:
            logger.error(f"Could not enqueue history retry for learner {learner_id}: {e}")
            return None
        logger.info(f"Queued history retry {job.id} for learner {learner_id} ({len(updates)} updates)")
        return job.id
