import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, List
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from firehose.core.config import FEED_FETCH_TIMEOUT_SECONDS, HYDRANT_REFRESH_MINUTES
from firehose.core.utils import utcnow
from firehose.models.drop_model import Drop, DropStatus, DropTag, Tag
from firehose.models.hydrant_model import Hydrant
from firehose.schemas.job_schema import HydrantFetchParams
from firehose.services.feed_fetcher import FeedEntry, fetch_feed
from firehose.services.job_service import enqueue_unique

logger = logging.getLogger(__name__)


class HydrantNotFoundError(Exception):
    def __init__(self, hydrant_id):
        self.hydrant_id = hydrant_id
        super().__init__(f"hydrant not found: {hydrant_id}")


@dataclass
class HydrantFetchResult:
    hydrant_id: UUID
    skipped: bool = False
    entries: int = 0
    drops: List[Drop] = field(default_factory=list)


def fetch_hydrant(
    db: Session,
    hydrant_id: UUID,
    fetcher=None,
    timeout: float = FEED_FETCH_TIMEOUT_SECONDS,
    now: datetime | None = None,
) -> HydrantFetchResult:
    """Poll one hydrant's feed and save unseen entries as unread drops.

    The hydrant row stays locked until this transaction ends, so two
    fetches of the same hydrant never overlap. Any failure rolls the
    whole run back and leaves fetched_at alone; running again is safe
    because entries already saved are skipped by URL.
    """
    fetcher = fetcher or fetch_feed
    now = now or utcnow()

    try:
        hydrant = db.execute(
            select(Hydrant).where(Hydrant.id == hydrant_id).with_for_update()
        ).scalar_one_or_none()
        if hydrant is None:
            raise HydrantNotFoundError(hydrant_id)

        if not hydrant.active:
            logger.info("Skipping inactive hydrant", extra={"hydrant_id": str(hydrant.id)})
            db.commit()
            return HydrantFetchResult(hydrant_id=hydrant.id, skipped=True)

        entries = fetcher(hydrant.url, timeout)
        candidates = recent_entries(entries, hydrant.fetched_at)
        known = existing_urls(db, hydrant.user_id, [entry.url for entry in candidates])
        tags = hydrant_tags(db, hydrant)

        drops = []
        for entry in candidates:
            if entry.url in known:
                continue
            known.add(entry.url)
            drops.append(insert_feed_drop(db, hydrant, entry, tags, now))

        hydrant.fetched_at = now
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Fetched hydrant: %d entries, %d new drops", len(entries), len(drops),
        extra={"hydrant_id": str(hydrant_id)},
    )
    return HydrantFetchResult(hydrant_id=hydrant_id, entries=len(entries), drops=drops)


def recent_entries(entries: Iterable[FeedEntry], fetched_at: datetime | None) -> List[FeedEntry]:
    """Drop entries published before the last successful fetch.

    Undated entries are kept; URL dedup is the final check for them.
    """
    if fetched_at is None:
        return list(entries)
    return [
        entry for entry in entries
        if entry.published_at is None or entry.published_at >= fetched_at
    ]


def existing_urls(db: Session, user_id: UUID, urls: List[str]) -> set:
    if not urls:
        return set()
    rows = db.execute(
        select(Drop.url).where(Drop.user_id == user_id, Drop.url.in_(set(urls)))
    ).scalars()
    return set(rows)


def hydrant_tags(db: Session, hydrant: Hydrant) -> List[Tag]:
    wanted = hydrant.tag_uuids()
    if not wanted:
        return []
    tags = db.execute(
        select(Tag).where(Tag.id.in_(wanted), Tag.user_id == hydrant.user_id)
    ).scalars().all()
    missing = set(wanted) - {tag.id for tag in tags}
    if missing:
        logger.warning(
            "Hydrant references %d unknown tags", len(missing),
            extra={"hydrant_id": str(hydrant.id)},
        )
    return list(tags)


def insert_feed_drop(db: Session, hydrant: Hydrant, entry: FeedEntry, tags: List[Tag], now: datetime) -> Drop:
    drop = Drop(
        user_id=hydrant.user_id,
        title=entry.title,
        url=entry.url,
        status=DropStatus.UNREAD,
        moved_at=now,
        hydrant_id=hydrant.id,
    )
    db.add(drop)
    db.flush()
    for tag in tags:
        db.add(DropTag(drop_id=drop.id, tag_id=tag.id))
    db.flush()
    return drop


def stale_hydrants(db: Session, now: datetime | None = None, refresh_minutes: int = HYDRANT_REFRESH_MINUTES) -> List[Hydrant]:
    cutoff = (now or utcnow()) - timedelta(minutes=refresh_minutes)
    return db.execute(
        select(Hydrant)
        .where(
            Hydrant.active.is_(True),
            or_(Hydrant.fetched_at.is_(None), Hydrant.fetched_at < cutoff),
        )
        .order_by(Hydrant.created_at.asc())
    ).scalars().all()


def hydrate_all(db: Session, now: datetime | None = None, refresh_minutes: int = HYDRANT_REFRESH_MINUTES):
    """Enqueue a hydrant_fetch for every stale active hydrant"""
    now = now or utcnow()
    hydrant_ids = [hydrant.id for hydrant in stale_hydrants(db, now, refresh_minutes)]
    jobs = [
        enqueue_unique(db, HydrantFetchParams(hydrant_id=hydrant_id), now)
        for hydrant_id in hydrant_ids
    ]
    logger.info("Scheduled %d hydrant fetches", len(jobs))
    return jobs
