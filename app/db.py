import functools
from contextlib import contextmanager
from typing import Callable, Generator, Iterator, TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from .errors import DatastoreTimeoutError
from .settings import get_settings

T = TypeVar("T")

_settings = get_settings()

# DATABASE_URL defaults to a local SQLite file at ./data.db.
# Override via the DATABASE_URL environment variable for staging/production.
DATABASE_URL = _settings.database_url
DB_TIMEOUT_SECONDS = _settings.db_timeout_seconds

# Build the SQLAlchemy engine with backend-specific settings.
# - SQLite (dev/local): allow cross-thread access; the busy handler waits at most DB_TIMEOUT_SECONDS.
# - Server DBs (e.g., MySQL/Postgres): safe pooling plus a bounded pool checkout.
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False, "timeout": DB_TIMEOUT_SECONDS},
    )

    # pysqlite defers BEGIN until the first write, which lets two workers read the same
    # snapshot and both insert. Take the write lock when the transaction starts instead.
    @event.listens_for(engine, "connect")
    def _sqlite_disable_implicit_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _sqlite_begin_immediate(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=280,  # recycle connections periodically to prevent 'MySQL server has gone away'
        pool_size=10,
        max_overflow=20,
        pool_timeout=DB_TIMEOUT_SECONDS,
    )

# Session factory: one session per request; autocommit and autoflush disabled for explicit transaction control
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models declared via SQLAlchemy's declarative API
Base = declarative_base()


def get_db() -> Generator:
    """
    FastAPI dependency.

    Yields a database session for the lifetime of the request and guarantees it
    is closed afterwards, even if an exception is raised.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Driver messages that mean "a bounded wait elapsed" rather than a real failure
_TIMEOUT_MARKERS = (
    "database is locked",  # sqlite busy handler gave up
    "lock timeout",  # postgres lock_timeout
    "lock_not_available",
    "lock wait timeout exceeded",  # mysql innodb_lock_wait_timeout
)


def is_lock_timeout(exc: BaseException) -> bool:
    if isinstance(exc, PoolTimeoutError):
        return True
    if isinstance(exc, OperationalError):
        msg = str(getattr(exc, "orig", exc)).lower()
        return any(marker in msg for marker in _TIMEOUT_MARKERS)
    return False


def apply_lock_timeout(db: Session) -> None:
    """Bound row-lock waits for the current transaction on server databases.

    SQLite is bounded by the connect-time busy timeout instead.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = '{int(DB_TIMEOUT_SECONDS * 1000)}ms'"))
    elif dialect == "mysql":
        db.execute(text(f"SET SESSION innodb_lock_wait_timeout = {int(DB_TIMEOUT_SECONDS)}"))


def translate_lock_timeouts(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator for service operations whose first argument is the Session.

    Reads issued before a unit_of_work can also hit a bounded wait (SQLite takes its write
    lock at BEGIN); surface those as DatastoreTimeoutError too.
    """
    @functools.wraps(func)
    def wrapper(db: Session, *args, **kwargs) -> T:
        try:
            return func(db, *args, **kwargs)
        except (OperationalError, PoolTimeoutError) as exc:
            if not is_lock_timeout(exc):
                raise
            db.rollback()
            raise DatastoreTimeoutError("datastore lock wait timed out; retry the request") from exc

    return wrapper


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Explicit transactional boundary for a read-validate-write sequence.

    - Commits when the block exits normally
    - Rolls back on any exception, then re-raises it
    - Lock/busy timeouts surface as DatastoreTimeoutError so callers can retry;
      every other datastore error propagates unmodified
    """
    try:
        yield db
        db.commit()
    except Exception as exc:
        db.rollback()
        if is_lock_timeout(exc):
            raise DatastoreTimeoutError("datastore lock wait timed out; retry the request") from exc
        raise
