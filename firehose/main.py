import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI

from firehose.controllers.job_controller import router as job_router
from firehose.core.config import WORKER_COUNT, WORKER_ENABLED
from firehose.core.database import init_db
from firehose.core.logging_config import setup_logging
from firehose.worker.sweeper import RetentionSweeper
from firehose.worker.worker import Dispatcher

setup_logging()
logger = logging.getLogger("firehose")


def start_worker_threads(stop_event: threading.Event, count: int = WORKER_COUNT):
    threads = []
    for i in range(count):
        dispatcher = Dispatcher(name=f"dispatcher-{i}")
        threads.append(threading.Thread(
            target=dispatcher.run,
            args=(stop_event,),
            name=dispatcher.name,
            daemon=True, # daemon thread will exit when main program exits
        ))
    threads.append(threading.Thread(
        target=RetentionSweeper().run,
        args=(stop_event,),
        name="retention-sweeper",
        daemon=True,
    ))
    for thread in threads:
        thread.start()
    logger.info("Started %d dispatcher thread(s) and the retention sweeper", count)
    return threads


@asynccontextmanager
async def lifespan(application: FastAPI):
    init_db()
    logger.info("Database tables created/verified")

    stop_event = threading.Event()
    threads = start_worker_threads(stop_event) if WORKER_ENABLED else []
    try:
        yield
    finally:
        stop_event.set()
        for thread in threads:
            thread.join(timeout=5)
        logger.info("Background workers stopped")


app = FastAPI(title="Firehose Jobs", lifespan=lifespan)

app.include_router(job_router)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "firehose.main:app",
        host="0.0.0.0",
        port=8000,
    )
