"""Database configuration and session management.

The document store is a set of SQLModel tables on a SQLAlchemy engine
(SQLite by default). Each table plays the role of one collection: a flat
mapping from an opaque id to a record, partitioned by ``owner_id``.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: Allows concurrent readers while writing,
      so live snapshot loads do not block behind request writes.

    - **Foreign Keys**: Disabled by default in SQLite. Enabled so every
      attendee, invitation and registration references an existing event
      and deleting an event cascades to them.

    - **check_same_thread=False**: FastAPI runs sync handlers in a threadpool
      and snapshot loads run on worker threads.

    - **timeout**: How long a writer waits on a locked database before
      SQLite raises ``OperationalError``; :func:`write` retries those.
"""
import logging

from sqlalchemy import event as sa_event
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from eventdesk.core.config import settings
from eventdesk.core.errors import EventDeskError, StoreWriteFailure

logger = logging.getLogger(__name__)

connect_args = {
    "check_same_thread": False,
    "timeout": settings.store_timeout_seconds,
}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables():
    """Create all database tables."""
    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session


def write(session: Session, apply, action: str = "save changes"):
    """Run ``apply(session)`` and commit, retrying while the database is locked.

    ``apply`` must be safe to call again after a rollback: it re-reads what it
    needs and re-adds what it creates. Its return value is passed through.
    Raises StoreWriteFailure once retries are exhausted or on any other
    database error. Errors raised by ``apply`` itself roll back and propagate.
    """
    attempts = settings.store_write_retries + 1
    for attempt in range(1, attempts + 1):
        try:
            result = apply(session)
            session.commit()
            return result
        except OperationalError as e:
            session.rollback()
            logger.warning(f"Write attempt {attempt}/{attempts} failed ({action}): {e}")
            if attempt == attempts:
                raise StoreWriteFailure(f"Failed to {action}: database unavailable") from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Write failed ({action}): {e}")
            raise StoreWriteFailure(f"Failed to {action}: {e.__class__.__name__}") from e
        except EventDeskError:
            # Rejected by apply; drop anything it staged or locked
            session.rollback()
            raise
