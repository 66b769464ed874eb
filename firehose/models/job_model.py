import uuid

from sqlalchemy import Column, DateTime, Index, JSON, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from firehose.core.database import Base
from firehose.core.utils import utcnow


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    params = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False) # tagged payload, {"type": ..., ...}

    scheduled_at = Column(DateTime, nullable=False, default=utcnow)
    started_at = Column(DateTime, nullable=True) # null = pending
    finished_at = Column(DateTime, nullable=True) # null = pending or in flight
    error = Column(Text, nullable=True) # null with finished_at set = success

    # hot path of every dispatcher tick: unfinished jobs by schedule
    __table_args__ = (
        Index(
            "jobs_scheduled_at",
            "scheduled_at",
            postgresql_where=finished_at.is_(None),
            sqlite_where=finished_at.is_(None),
        ),
    )

    @property
    def job_type(self):
        if isinstance(self.params, dict):
            return self.params.get("type")
        return None

    @property
    def state(self) -> str:
        if self.started_at is None:
            return "pending"
        if self.finished_at is None:
            return "running"
        return "failed" if self.error is not None else "succeeded"

    def __repr__(self):
        return f"<Job {self.id} {self.job_type} {self.state}>"
