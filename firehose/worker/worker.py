import logging
import threading
import time

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from firehose.core.config import (
    JOB_TIMEOUT_SECONDS,
    WORKER_ERROR_BACKOFF_SECONDS,
    WORKER_POLL_INTERVAL_SECONDS,
)
from firehose.core.database import SessionLocal
from firehose.core.logging_config import log_job_event
from firehose.schemas.job_schema import UnknownJobTypeError, decode_params, params_tag
from firehose.services.job_service import JobNotFoundError, JobStateError, claim_next, complete
from firehose.worker.handlers import HANDLERS

# store errors while recording an outcome are retried this many times
COMPLETE_ATTEMPTS = 3


class HandlerRun:
    """One handler call on its own daemon thread.

    A run that overruns its timeout is abandoned, never queued behind
    others, so it cannot start after the job was recorded as failed.
    """

    def __init__(self, target, name: str):
        self.error = None
        self._target = target
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def _run(self):
        try:
            self._target()
        except Exception as e:
            self.error = e

    def start(self):
        self._thread.start()
        return self

    def wait(self, timeout: float) -> bool:
        """True if the handler finished within timeout"""
        self._thread.join(timeout)
        return not self._thread.is_alive()


class Dispatcher:
    """Claims ready jobs, runs their handler, records the outcome.

    Any number of dispatchers (threads or processes) may share one
    database; the claim in the job store is the only coordination.
    """

    def __init__(
        self,
        session_factory=SessionLocal,
        handlers=None,
        poll_interval: float = WORKER_POLL_INTERVAL_SECONDS,
        job_timeout: float = JOB_TIMEOUT_SECONDS,
        error_backoff: float = WORKER_ERROR_BACKOFF_SECONDS,
        name: str = "dispatcher",
    ):
        self.session_factory = session_factory
        self.handlers = dict(HANDLERS if handlers is None else handlers)
        self.poll_interval = poll_interval
        self.job_timeout = job_timeout
        self.error_backoff = error_backoff
        self.name = name

    def run(self, stop_event: threading.Event):
        log_job_event("worker_started", f"{self.name} started", worker=self.name)
        try:
            while not stop_event.is_set():
                try:
                    job = self.run_once()
                except SQLAlchemyError as e:
                    log_job_event(
                        "store_error", f"{self.name}: job store error, backing off",
                        level=logging.ERROR, worker=self.name, error=str(e),
                    )
                    stop_event.wait(self.error_backoff)
                    continue
                except Exception as e:
                    log_job_event(
                        "worker_error", f"{self.name}: unexpected error, backing off",
                        level=logging.ERROR, exc_info=(type(e), e, e.__traceback__), worker=self.name,
                    )
                    stop_event.wait(self.error_backoff)
                    continue

                if job is None:
                    stop_event.wait(self.poll_interval)
        finally:
            log_job_event("worker_stopped", f"{self.name} stopped", worker=self.name)

    def run_once(self):
        """One tick: claim, execute, complete. Returns the finished job or None."""
        with self.session_factory() as db:
            job = claim_next(db)
            if job is None:
                return None
            job_id, raw_params = job.id, job.params

        log_job_event(
            "job_claimed", "Claimed job",
            job_id=str(job_id), job_type=params_tag(raw_params), worker=self.name,
        )
        try:
            error = self.execute(job_id, raw_params)
        except Exception as e:
            # the claimed job must still reach a terminal state
            log_job_event(
                "job_crashed", "Dispatching job failed", level=logging.ERROR,
                exc_info=(type(e), e, e.__traceback__), job_id=str(job_id),
            )
            error = f"{type(e).__name__}: {e}"
        return self._complete(job_id, error)

    def execute(self, job_id, raw_params) -> str | None:
        """Run the handler for raw_params. Returns an error string, or None on success."""
        tag = params_tag(raw_params)
        handler = self.handlers.get(tag) if tag is not None else None
        if handler is None:
            raw_tag = raw_params.get("type") if isinstance(raw_params, dict) else None
            error = str(UnknownJobTypeError(raw_tag))
            log_job_event("unknown_job_type", error, level=logging.ERROR, job_id=str(job_id))
            return error

        try:
            params = decode_params(raw_params)
        except (UnknownJobTypeError, ValidationError) as e:
            log_job_event("bad_params", "Job params rejected", level=logging.ERROR, job_id=str(job_id), error=str(e))
            return f"{type(e).__name__}: {e}"

        handler_run = HandlerRun(
            lambda: self._invoke(handler, params), name=f"{self.name}-job-{job_id}",
        ).start()
        if not handler_run.wait(self.job_timeout):
            error = f"job timed out after {self.job_timeout:g}s"
            log_job_event("job_timeout", error, level=logging.ERROR, job_id=str(job_id), job_type=tag)
            return error
        if handler_run.error is not None:
            e = handler_run.error
            log_job_event(
                "job_crashed", "Job handler raised", level=logging.ERROR,
                exc_info=(type(e), e, e.__traceback__), job_id=str(job_id), job_type=tag,
            )
            return f"{type(e).__name__}: {e}"
        return None

    def _invoke(self, handler, params):
        with self.session_factory() as db:
            handler(db, params)

    def _complete(self, job_id, error):
        for attempt in range(1, COMPLETE_ATTEMPTS + 1):
            try:
                with self.session_factory() as db:
                    job = complete(db, job_id, error)
            except (JobStateError, JobNotFoundError) as e:
                # a job is completed once; never overwrite the recorded outcome
                log_job_event("complete_rejected", str(e), level=logging.ERROR, job_id=str(job_id))
                return None
            except SQLAlchemyError as e:
                if attempt == COMPLETE_ATTEMPTS:
                    raise
                log_job_event(
                    "complete_retry", "Store error recording job outcome, retrying",
                    level=logging.WARNING, job_id=str(job_id), attempt=attempt, error=str(e),
                )
                time.sleep(self.error_backoff)
            else:
                if error is None:
                    log_job_event("job_succeeded", "Job succeeded", job_id=str(job_id), job_type=job.job_type)
                else:
                    log_job_event(
                        "job_failed", "Job failed", level=logging.WARNING,
                        job_id=str(job_id), job_type=job.job_type, error=error,
                    )
                return job
        return None
