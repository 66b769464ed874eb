from datetime import datetime
from typing import Annotated, List, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class UnknownJobTypeError(Exception):
    def __init__(self, tag):
        self.tag = tag
        super().__init__(f"unknown job type: {tag}")


# Job params: one model per job type, discriminated by "type"

class HydrantFetchParams(BaseModel):
    type: Literal["hydrant_fetch"] = "hydrant_fetch"
    hydrant_id: UUID


class HydrateAllParams(BaseModel):
    type: Literal["hydrate_all"] = "hydrate_all"


JobParams = Annotated[
    Union[HydrantFetchParams, HydrateAllParams],
    Field(discriminator="type"),
]

_job_params_adapter = TypeAdapter(JobParams)

KNOWN_JOB_TYPES = ("hydrant_fetch", "hydrate_all")


def params_tag(raw) -> str | None:
    """The type tag of a stored payload, or None when absent or not a string"""
    if isinstance(raw, dict):
        tag = raw.get("type")
        if isinstance(tag, str):
            return tag
    return None


def decode_params(raw):
    """Decode a stored params payload into its typed model.

    Raises UnknownJobTypeError for a missing or unrecognized tag, and
    pydantic.ValidationError when a known tag carries malformed fields.
    """
    tag = params_tag(raw)
    if tag not in KNOWN_JOB_TYPES:
        raise UnknownJobTypeError(tag)
    return _job_params_adapter.validate_python(raw)


def encode_params(params: BaseModel) -> dict:
    return params.model_dump(mode="json")


# API schemas

class EnqueueHydrantFetchRequest(BaseModel):
    hydrant_id: UUID
    scheduled_at: datetime | None = None


class SweepRequest(BaseModel):
    older_than_days: int | None = Field(default=None, ge=0)


class SweepResponse(BaseModel):
    deleted: int
    older_than: datetime


class JobDetailResponse(BaseModel):
    id: UUID
    params: dict
    state: str
    scheduled_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)


class DashboardStats(BaseModel):
    total_jobs: int
    pending_count: int
    running_count: int
    succeeded_count: int
    failed_count: int


class DashboardResponse(BaseModel):
    stats: DashboardStats
    failed_jobs: List[JobDetailResponse]
    recent_jobs: List[JobDetailResponse]
