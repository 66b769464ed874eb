from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from firehose.core.config import SWEEP_RETENTION_DAYS
from firehose.core.database import get_db
from firehose.core.utils import to_naive_utc, utcnow
from firehose.models.hydrant_model import Hydrant
from firehose.schemas.job_schema import (
    DashboardResponse,
    DashboardStats,
    EnqueueHydrantFetchRequest,
    HydrateAllParams,
    JobDetailResponse,
    SweepRequest,
    SweepResponse,
)
from firehose.services.job_service import (
    enqueue_hydrant_fetch,
    enqueue_unique,
    get_job_by_id,
    job_stats,
    list_failed_jobs,
    list_recent_jobs,
    sweep,
)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.post("/hydrant_fetch", response_model=JobDetailResponse)
def submit_hydrant_fetch(request: EnqueueHydrantFetchRequest, db: Session = Depends(get_db)):
    if db.get(Hydrant, request.hydrant_id) is None:
        raise HTTPException(status_code=404, detail="Hydrant not found")

    job = enqueue_hydrant_fetch(db, request.hydrant_id, to_naive_utc(request.scheduled_at))
    return JobDetailResponse.model_validate(job)


@router.post("/hydrate_all", response_model=JobDetailResponse)
def submit_hydrate_all(db: Session = Depends(get_db)):
    job = enqueue_unique(db, HydrateAllParams())
    return JobDetailResponse.model_validate(job)


@router.get("/job_status/{job_id}", response_model=JobDetailResponse)
def job_status(job_id: UUID, db: Session = Depends(get_db)):
    job = get_job_by_id(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobDetailResponse.model_validate(job)


@router.post("/sweep", response_model=SweepResponse)
def run_sweep(request: SweepRequest | None = None, db: Session = Depends(get_db)):
    """Run the retention sweep once"""
    days = SWEEP_RETENTION_DAYS
    if request is not None and request.older_than_days is not None:
        days = request.older_than_days
    older_than = utcnow() - timedelta(days=days)
    deleted = sweep(db, older_than)
    return SweepResponse(deleted=deleted, older_than=older_than)


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(db: Session = Depends(get_db)):
    """Get dashboard with job statistics and recent jobs"""
    return DashboardResponse(
        stats=DashboardStats(**job_stats(db)),
        failed_jobs=[JobDetailResponse.model_validate(job) for job in list_failed_jobs(db, limit=10)],
        recent_jobs=[JobDetailResponse.model_validate(job) for job in list_recent_jobs(db, limit=20)],
    )
