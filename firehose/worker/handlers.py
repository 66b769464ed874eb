from sqlalchemy.orm import Session

from firehose.schemas.job_schema import HydrateAllParams, HydrantFetchParams
from firehose.services.hydrant_service import fetch_hydrant, hydrate_all


def run_hydrant_fetch(db: Session, params: HydrantFetchParams):
    fetch_hydrant(db, params.hydrant_id)


def run_hydrate_all(db: Session, params: HydrateAllParams):
    hydrate_all(db)


# job type tag -> handler(db, params)
HANDLERS = {
    "hydrant_fetch": run_hydrant_fetch,
    "hydrate_all": run_hydrate_all,
}
