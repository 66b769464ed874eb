import uuid

from sqlalchemy import Boolean, Column, DateTime, JSON, String, Uuid

from firehose.core.database import Base
from firehose.core.utils import utcnow


class Hydrant(Base):
    __tablename__ = "hydrants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)

    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    tag_ids = Column(JSON, nullable=False, default=list) # list of tag uuid strings
    fetched_at = Column(DateTime, nullable=True) # last successful poll

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def tag_uuids(self):
        return [uuid.UUID(str(tag_id)) for tag_id in (self.tag_ids or [])]
