# backend/slotbook/database.py

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from .config import settings
from .models import Base

_url = settings.resolved_database_url
# timeout: how long a writer waits on BEGIN IMMEDIATE before "database is locked"
_connect_args = (
    {"check_same_thread": False, "timeout": settings.service_lock_timeout_seconds}
    if _url.startswith("sqlite")
    else {}
)

engine = create_engine(_url, connect_args=_connect_args)


# SQLite ships with foreign keys disabled; CalendarEvents cascade relies on them
def enable_sqlite_fk(dbapi_connection, _):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if _url.startswith("sqlite"):
    event.listen(engine, "connect", enable_sqlite_fk)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def init_db() -> None:
    """Create tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
