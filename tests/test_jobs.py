from types import SimpleNamespace

from redis.exceptions import ConnectionError as RedisConnectionError

from assessment.jobs.history_job import commit_history_job
from assessment.jobs.queue import HISTORY_JOB, RETRY_INTERVALS, HistoryRetryQueue
from assessment.models.schemas import HistoryUpdate
from assessment.services.history import updates_to_payload


class FakeQueue:
    def __init__(self, error=None):
        self.error = error
        self.jobs = []

    def enqueue(self, func, *args, **kwargs):
        if self.error:
            raise self.error
        self.jobs.append((func, args, kwargs))
        return SimpleNamespace(id=f"job-{len(self.jobs)}")


def batch():
    return [
        HistoryUpdate(question_id=1, test_id=5, category="Python", difficulty="easy", answered_correctly=True),
        HistoryUpdate(question_id=2, test_id=5, category="SQL", difficulty="hard", answered_correctly=False),
    ]


def test_enqueue_history_with_retry_policy():
    queue = FakeQueue()
    job_id = HistoryRetryQueue(queue).enqueue_history("l1", batch())
    assert job_id == "job-1"
    func, args, kwargs = queue.jobs[0]
    assert func == HISTORY_JOB
    assert args[0] == "l1" and [p["question_id"] for p in args[1]] == [1, 2]
    assert kwargs["retry"].max == len(RETRY_INTERVALS)


def test_enqueue_failure_is_logged_not_raised():
    queue = FakeQueue(error=RedisConnectionError("connection refused"))
    assert HistoryRetryQueue(queue).enqueue_history("l1", batch()) is None


def test_history_job_replays_batch(engine, tracker):
    assert commit_history_job("l1", updates_to_payload(batch()), engine=engine) == 2
    history = tracker.load("l1")
    assert history.total_questions_attempted == 2
    assert history.correct_answers == 1
    assert history.difficulty_performance["hard"].attempted == 1
