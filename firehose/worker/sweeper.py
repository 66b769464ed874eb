import logging
import threading
from datetime import datetime, timedelta

from firehose.core.config import SWEEP_INTERVAL_SECONDS, SWEEP_RETENTION_DAYS
from firehose.core.database import SessionLocal
from firehose.core.utils import utcnow
from firehose.services.job_service import sweep

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Deletes old successful jobs on its own schedule"""

    def __init__(
        self,
        session_factory=SessionLocal,
        interval: float = SWEEP_INTERVAL_SECONDS,
        retention: timedelta = timedelta(days=SWEEP_RETENTION_DAYS),
    ):
        self.session_factory = session_factory
        self.interval = interval
        self.retention = retention

    def sweep_once(self, now: datetime | None = None) -> int:
        older_than = (now or utcnow()) - self.retention
        with self.session_factory() as db:
            deleted = sweep(db, older_than)
        logger.info("Swept %d finished jobs older than %s", deleted, older_than.isoformat())
        return deleted

    def run(self, stop_event: threading.Event):
        while True:
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Job sweep failed, retrying next cycle")
            if stop_event.wait(self.interval):
                break
