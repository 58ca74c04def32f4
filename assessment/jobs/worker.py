import logging

from redis import Redis
from rq import Worker

from assessment.core.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    w = Worker([settings.RQ_QUEUE], connection=Redis.from_url(settings.REDIS_URL))
    w.work(with_scheduler=True)
