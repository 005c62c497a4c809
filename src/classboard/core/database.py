"""Database session and metadata configuration."""

from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Settings, get_settings


def _engine_options(settings: Settings) -> dict:
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite":
        options: dict = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            # every session must see the same in-memory database
            options["poolclass"] = StaticPool
        return options
    if url.get_backend_name() == "postgresql" and settings.db_statement_timeout_ms:
        return {"connect_args": {"options": f"-c statement_timeout={settings.db_statement_timeout_ms}"}}
    return {}


settings = get_settings()

engine = create_engine(settings.database_url, future=True, **_engine_options(settings))

if engine.dialect.name == "sqlite":

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def get_db() -> Generator:
    """Yield a database session for request lifetime."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
