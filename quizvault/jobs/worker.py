from rq import Worker
from quizvault.core.config import settings
from quizvault.core.logging import configure_logging
from quizvault.jobs.queue import redis

if __name__ == "__main__":
    configure_logging()
    w = Worker([settings.RQ_QUEUE], connection=redis)
    w.work(with_scheduler=True)
