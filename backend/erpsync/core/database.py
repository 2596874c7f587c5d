from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from erpsync.core.config import settings

engine = create_engine(
    settings.APP_DATABASE_DSN,
    connect_args=({"check_same_thread": False} if "sqlite" in settings.APP_DATABASE_DSN else {}),
    pool_pre_ping="sqlite" not in settings.APP_DATABASE_DSN,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for code running outside a request (scheduler tasks).

    Looks up ``SessionLocal`` at call time so a patched factory is honoured.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def dialect_name(db: Session) -> str:
    """Name of the SQL dialect the session is bound to ("postgresql", "sqlite", ...)."""
    return str(db.get_bind().dialect.name)


def insert_for(db: Session, model: Any) -> Any:
    """Dialect-specific INSERT supporting ``on_conflict_do_nothing``."""
    if dialect_name(db) == "postgresql":
        return postgresql_insert(model)
    return sqlite_insert(model)
