import enum
import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, String, Uuid

from firehose.core.database import Base
from firehose.core.utils import utcnow


class DropStatus(str, enum.Enum):
    UNREAD = "unread"
    READ = "read"
    SAVED = "saved"


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    color = Column(String(7), nullable=False, default="#888888")

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Drop(Base):
    __tablename__ = "drops"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)

    title = Column(String(1024), nullable=True)
    url = Column(String(2048), nullable=False)
    status = Column(
        Enum(DropStatus, name="drop_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=DropStatus.UNREAD,
    )
    moved_at = Column(DateTime, nullable=False, default=utcnow, index=True) # triage ordering
    hydrant_id = Column(Uuid, ForeignKey("hydrants.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("drops_user_id_url", "user_id", "url"), # dedup existence check
    )


class DropTag(Base):
    __tablename__ = "drop_tags"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    drop_id = Column(Uuid, ForeignKey("drops.id", ondelete="CASCADE"), nullable=False, index=True)
    tag_id = Column(Uuid, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False, index=True)
