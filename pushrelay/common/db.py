"""Database bootstrap helpers shared by both services."""

from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import URL, make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from pushrelay.common.config import settings


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def database_url(raw_url: str, service_key: str | None = None) -> URL:
    """Build the engine URL, injecting the service credential as password when given."""

    url = make_url(raw_url)
    if service_key:
        url = url.set(password=service_key)
    return url


# Single SQLAlchemy engine per process.
engine = create_engine(
    database_url(settings.database_url, settings.database_service_key),
    pool_pre_ping=True,
)
# `expire_on_commit=False` keeps ORM objects readable after commit in handlers.
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass
