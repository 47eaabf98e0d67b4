"""
funding_kernel.db.engine -- Engine, session factory and transactional scope.

Responsibility:
    Own the single process-wide Engine and sessionmaker, and provide
    ``session_scope`` -- the unit of work every service and gateway commits
    through.

Architecture position:
    Kernel > DB. Imports db/base.py; create_tables/drop_tables additionally
    import the model registry. Nothing above the kernel configures engines.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED; contended rows (order claim, tier
      capacity, prepaid balance, refund cross-link) are taken with
      SELECT ... FOR UPDATE by the callers.
    - SQLite (test harness only) has no row locks, so every transaction
      starts with BEGIN IMMEDIATE: one writer at a time, which gives the
      same check-then-write guarantee.
    - Sessions are created with expire_on_commit=False so rows returned from
      a committed scope stay readable after it closes.

Failure modes:
    - RuntimeError when the engine is used before init_engine_from_url().
    - OperationalError ("database is locked") when a SQLite writer waits
      longer than the busy timeout.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from funding_kernel.logging_config import get_logger

logger = get_logger("db.engine")

SQLITE_BUSY_TIMEOUT_SECONDS = 30

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _serialize_sqlite_writers(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record):
        # pysqlite must not issue its own BEGIN
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _build_engine(database_url: str, echo: bool, pool_size: int) -> Engine:
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
            },
        )
        _serialize_sqlite_writers(engine)
        return engine
    return create_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=pool_size // 2,
        pool_pre_ping=True,
        pool_recycle=1800,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
) -> Engine:
    """
    Create the process-wide engine and session factory, replacing any
    previous ones.

    Args:
        database_url: ``postgresql://...`` in production, or a file-backed
            ``sqlite:///path.db`` for tests. In-memory SQLite is not
            supported because each pooled connection would see its own
            database.
        echo: Log every SQL statement.
        pool_size: Pooled PostgreSQL connections (ignored for SQLite).
    """
    global _engine, _session_factory

    reset_engine()
    _engine = _build_engine(database_url, echo, pool_size)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "pool_size": pool_size, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Factory handed to services. They open one scope per step so that no
    lock is held across a gateway call.
    """
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Iterator[Session]:
    """
    Commit on normal exit, roll back and re-raise on error, always close.

    Usage:
        with session_scope(factory) as session:
            session.add(order)
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    from funding_kernel.db.base import Base
    import funding_kernel.models  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every mapped table. Test harness only."""
    from funding_kernel.db.base import Base
    import funding_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose pooled connections and forget the engine."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
