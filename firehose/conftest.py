import uuid
from email.utils import format_datetime
from datetime import timezone

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from firehose.core.database import Base, get_db, make_engine
from firehose.main import app
from firehose.models import job_model, hydrant_model  # noqa: F401
from firehose.models.drop_model import Drop, DropStatus, Tag
from firehose.models.hydrant_model import Hydrant


# TEST DATABASE SETUP
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_firehose.db"
engine = make_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def cleanup_db():
    """Clean database before and after each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    # not used as a context manager, so the lifespan workers never start
    return TestClient(app)


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def make_hydrant(db, user_id):
    def _make(url="https://example.com/feed.xml", active=True, tag_ids=(), fetched_at=None, owner=None):
        hydrant = Hydrant(
            user_id=owner or user_id,
            name="Example",
            url=url,
            active=active,
            tag_ids=[str(tag_id) for tag_id in tag_ids],
            fetched_at=fetched_at,
        )
        db.add(hydrant)
        db.commit()
        db.refresh(hydrant)
        return hydrant
    return _make


@pytest.fixture
def make_drop(db, user_id):
    def _make(url, title=None, owner=None):
        drop = Drop(user_id=owner or user_id, url=url, title=title, status=DropStatus.READ)
        db.add(drop)
        db.commit()
        db.refresh(drop)
        return drop
    return _make


@pytest.fixture
def make_tag(db, user_id):
    def _make(name="news", owner=None):
        tag = Tag(user_id=owner or user_id, name=name, color="#ff0000")
        db.add(tag)
        db.commit()
        db.refresh(tag)
        return tag
    return _make


@pytest.fixture
def rss():
    """Build an RSS 2.0 document from (url, title, published) tuples"""
    def _build(*items):
        parts = []
        for link, title, published in items:
            fields = []
            if title:
                fields.append(f"<title>{title}</title>")
            if link:
                fields.append(f"<link>{link}</link>")
            if published:
                fields.append(f"<pubDate>{format_datetime(published.replace(tzinfo=timezone.utc))}</pubDate>")
            parts.append(f"<item>{''.join(fields)}</item>")
        return (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<rss version="2.0"><channel><title>Test feed</title>'
            '<link>https://example.com/</link><description>test</description>'
            f"{''.join(parts)}</channel></rss>"
        ).encode("utf-8")
    return _build


@pytest.fixture
def mock_client():
    """httpx.Client whose transport is the given request handler"""
    clients = []

    def _make(handler):
        c = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.close()
