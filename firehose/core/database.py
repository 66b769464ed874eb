from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from firehose.core.config import DATABASE_URL


def make_engine(url: str):
    connect_args = {}
    if url.startswith("sqlite"):
        # worker threads share the file; wait on the write lock instead of failing fast
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(
        url,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine, # bind the engine to the sessionmaker
)

Base = declarative_base() # base class for all ORM models


def init_db(bind=None):
    """Create all tables"""
    # models must be imported so Base.metadata is populated
    from firehose.models import job_model, hydrant_model, drop_model  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)


def get_db(): # Dependency to get DB session
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory=SessionLocal):
    s = factory()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
