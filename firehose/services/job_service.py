import logging
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from firehose.core.utils import utcnow
from firehose.models.job_model import Job
from firehose.schemas.job_schema import HydrantFetchParams, encode_params

logger = logging.getLogger(__name__)

# attempts per claim_next call before giving up on a contended queue
CLAIM_ATTEMPTS = 10


class JobNotFoundError(Exception):
    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"job not found: {job_id}")


class JobStateError(Exception):
    """A job transition that the lifecycle does not allow"""


class JobAlreadyFinishedError(JobStateError):
    def __init__(self, job: Job):
        self.job_id = job.id
        super().__init__(f"job {job.id} already finished at {job.finished_at}")


class JobNotClaimedError(JobStateError):
    def __init__(self, job: Job):
        self.job_id = job.id
        super().__init__(f"job {job.id} was never claimed")


def _payload(params) -> dict:
    if isinstance(params, BaseModel):
        return encode_params(params)
    return dict(params)


def enqueue(db: Session, params, scheduled_at: datetime | None = None) -> Job:
    """Insert a new pending job"""
    job = Job(
        params=_payload(params),
        scheduled_at=scheduled_at or utcnow(),
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info("Enqueued job", extra={"job_id": str(job.id), "job_type": job.job_type})
    return job


def enqueue_unique(db: Session, params, scheduled_at: datetime | None = None) -> Job:
    """Enqueue unless an unfinished job with identical params already exists"""
    payload = _payload(params)
    # narrow in SQL on the string fields (type tag, ids); exact match below
    conditions = [
        Job.params[key].as_string() == value
        for key, value in payload.items()
        if isinstance(value, str)
    ]
    unfinished = db.execute(
        select(Job)
        .where(Job.finished_at.is_(None), *conditions)
        .order_by(Job.scheduled_at.asc())
    ).scalars().all()
    for job in unfinished:
        if job.params == payload:
            return job
    return enqueue(db, payload, scheduled_at)


def enqueue_hydrant_fetch(db: Session, hydrant_id: UUID, scheduled_at: datetime | None = None) -> Job:
    return enqueue(db, HydrantFetchParams(hydrant_id=hydrant_id), scheduled_at)


def get_job_by_id(db: Session, job_id: UUID) -> Job | None:
    return db.get(Job, job_id)


def claim_next(db: Session, now: datetime | None = None) -> Job | None:
    """Atomically take the oldest ready job, or return None.

    The row is selected FOR UPDATE SKIP LOCKED so concurrent claimers
    never wait on each other, then marked with a conditional update that
    only succeeds while started_at is still null. A lost race retries on
    the next candidate.
    """
    for _ in range(CLAIM_ATTEMPTS):
        claimed_at = now or utcnow()
        candidate = db.execute(
            select(Job.id)
            .where(
                Job.started_at.is_(None),
                Job.finished_at.is_(None),
                Job.scheduled_at <= claimed_at,
            )
            .order_by(Job.scheduled_at.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        ).scalar_one_or_none()

        if candidate is None:
            db.commit()
            return None

        result = db.execute(
            update(Job)
            .where(Job.id == candidate, Job.started_at.is_(None))
            .values(started_at=claimed_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            db.commit()
            return db.get(Job, candidate)

        db.rollback()

    logger.warning("Gave up claiming after %d contended attempts", CLAIM_ATTEMPTS)
    return None


def complete(db: Session, job_id: UUID, error: str | None = None, now: datetime | None = None) -> Job:
    """Record a claimed job's terminal state.

    A job is completed exactly once; a second call raises
    JobAlreadyFinishedError and leaves the stored outcome untouched.
    """
    result = db.execute(
        update(Job)
        .where(
            Job.id == job_id,
            Job.started_at.is_not(None),
            Job.finished_at.is_(None),
        )
        .values(finished_at=now or utcnow(), error=error)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        job = db.get(Job, job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.finished_at is not None:
            raise JobAlreadyFinishedError(job)
        raise JobNotClaimedError(job)

    db.commit()
    return db.get(Job, job_id)


def sweep(db: Session, older_than: datetime) -> int:
    """Delete successful jobs that finished before older_than. Failed jobs are kept."""
    result = db.execute(
        delete(Job)
        .where(
            Job.finished_at.is_not(None),
            Job.finished_at < older_than,
            Job.error.is_(None),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


def job_stats(db: Session) -> dict:
    def count(*conditions):
        return db.execute(select(func.count(Job.id)).where(*conditions)).scalar() or 0

    return {
        "total_jobs": count(),
        "pending_count": count(Job.started_at.is_(None)),
        "running_count": count(Job.started_at.is_not(None), Job.finished_at.is_(None)),
        "succeeded_count": count(Job.finished_at.is_not(None), Job.error.is_(None)),
        "failed_count": count(Job.finished_at.is_not(None), Job.error.is_not(None)),
    }


def list_failed_jobs(db: Session, limit: int = 10):
    return db.execute(
        select(Job)
        .where(Job.error.is_not(None))
        .order_by(Job.finished_at.desc())
        .limit(limit)
    ).scalars().all()


def list_recent_jobs(db: Session, limit: int = 20):
    return db.execute(
        select(Job).order_by(Job.scheduled_at.desc()).limit(limit)
    ).scalars().all()
