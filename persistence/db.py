from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from config import STORAGE_URL

Base = declarative_base()


def make_engine(url: str = STORAGE_URL):
    if url.startswith("sqlite"):
        # An in-memory database only lives as long as its single connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url)


def make_session_factory(url: str = STORAGE_URL):
    """Create the engine, make sure the tables exist and return a session factory."""
    engine = make_engine(url)
    init_db(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db(engine):
    # Import models here so they get registered with Base before creating tables
    import persistence.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
