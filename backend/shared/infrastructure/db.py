"""
Database configuration and session management.
Uses SQLAlchemy 2.0 patterns.
"""

from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from shared.config.settings import settings
from shared.utils.exceptions import AppException, DatabaseError, TransactionConflictError

# SQLSTATEs of a transaction aborted by a concurrent one:
# serialization_failure, deadlock_detected, lock_not_available
CONCURRENCY_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def build_engine(url: str) -> Engine:
    """
    Create an engine with pool settings suited to the backend.

    SQLite (used by the CLI's local mode and tests) takes none of the pool or
    connect-timeout options.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=30,
        pool_recycle=1800,
        isolation_level=settings.database_isolation_level,
        connect_args={"connect_timeout": 10},
        echo=False,
    )


engine = build_engine(settings.database_url)

# Session factory. expire_on_commit=False keeps committed orders readable
# while the response is serialized.
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Usage:
        @router.get("/orders")
        def list_orders(db: Session = Depends(get_db)):
            ...

    The session is automatically closed after the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def safe_commit(db: Session) -> None:
    """
    Commit with automatic rollback on failure.

    Raises the original exception after rolling back.
    """
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise


@contextmanager
def transaction(db: Session) -> Generator[Session, None, None]:
    """
    Run a unit of work atomically: commit on success, roll back on any error.

    Usage:
        with transaction(db):
            gateway.create(...)
            gateway.create_many(...)
    """
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    safe_commit(db)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def is_concurrency_failure(exc: SQLAlchemyError) -> bool:
    """True when the database aborted the statement because of a concurrent transaction."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in CONCURRENCY_SQLSTATES:
        return True
    # SQLite reports lock contention only through the message
    return "database is locked" in str(orig)


def classify_db_error(exc: SQLAlchemyError, operation: str) -> AppException:
    """
    Map a driver failure to the API error the caller should see.

    Concurrency aborts become a retryable TransactionConflictError (409);
    anything else is a DatabaseError (500).

    Usage:
        except SQLAlchemyError as e:
            raise classify_db_error(e, "update Order") from e
    """
    error = str(getattr(exc, "orig", None) or exc)
    if is_concurrency_failure(exc):
        return TransactionConflictError(operation, error=error)
    return DatabaseError(operation, error=error)
