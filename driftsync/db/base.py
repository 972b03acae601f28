from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from driftsync.core.config import Settings
from driftsync.core.errors import DatabaseConnectionError


def normalize_database_url(raw_url: str) -> URL:
    try:
        db_url = make_url(raw_url.strip())
    except ArgumentError as e:
        raise DatabaseConnectionError(f"could not parse database URL: {e}") from e

    # Hosted Postgres providers hand out bare postgres:// / postgresql:// URLs;
    # route them through psycopg 3 instead of SQLAlchemy's psycopg2 default.
    if db_url.drivername in {"postgres", "postgresql"}:
        db_url = db_url.set(drivername="postgresql+psycopg")
    return db_url


def build_engine(raw_url: str, settings: Settings) -> Engine:
    pool_mode = (settings.db_pool or "null").lower()
    db_url = normalize_database_url(raw_url)

    # SQLite engines don't accept queue-pool kwargs like max_overflow/pool_size.
    if db_url.get_backend_name() == "sqlite":
        engine_kwargs = {
            "future": True,
            "connect_args": {"check_same_thread": False},
        }
        if db_url.database in {None, "", ":memory:"}:
            engine_kwargs["poolclass"] = StaticPool

        return create_engine(db_url, **engine_kwargs)

    if pool_mode == "null":
        return create_engine(db_url, poolclass=NullPool, pool_pre_ping=True, future=True)

    return create_engine(
        db_url,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        future=True,
    )


def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )
