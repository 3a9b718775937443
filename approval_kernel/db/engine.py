"""
Module: approval_kernel.db.engine
Responsibility: One process-wide SQLAlchemy engine and session factory for
    the SQL-backed stores, plus the ``session_scope`` transaction helper.
Architecture position: Kernel > DB.  create_tables/drop_tables import the
    models lazily so Base.metadata is complete.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED; the request store takes explicit
      row locks (SELECT ... FOR UPDATE) when it writes.
    - SQLite (tests, single-process deployments) shares one connection
      through StaticPool so ``sqlite://`` in-memory databases survive
      across sessions and threads.
    - JSON columns (before/after values, attachments) are encoded with
      approval_kernel.utils.hashing.dumps and decoded with loads(), so
      Decimal values come back as Decimal.

Failure modes:
    - RuntimeError from any accessor used before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from approval_kernel.logging_config import configure_logging, get_logger
from approval_kernel.utils.hashing import dumps, loads

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _engine_options(backend: str, pool_size: int, max_overflow: int, pool_pre_ping: bool) -> dict[str, Any]:
    if backend == "sqlite":
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": pool_pre_ping,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
) -> Engine:
    """
    Create the engine for ``database_url`` and bind the session factory.

    A second call replaces the first engine without disposing it; call
    reset_engine() for that.  Pool settings are ignored for SQLite.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    backend = url.get_backend_name()
    _engine = create_engine(
        url,
        echo=echo,
        json_serializer=dumps,
        json_deserializer=loads,
        **_engine_options(backend, pool_size, max_overflow, pool_pre_ping),
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": backend, "echo": echo})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    """A new, unmanaged session.  Prefer ``session_scope``."""
    return get_session_factory()()


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Run a block in one transaction.

    Commits on normal exit; rolls back and re-raises on any exception.
    The session is always closed.  ``factory`` defaults to the module's
    session factory.
    """
    session = (factory or get_session_factory())()
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
    from approval_kernel.db.base import Base
    import approval_kernel.models  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every approval table.  Tests only."""
    from approval_kernel.db.base import Base
    import approval_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_at_exit() -> None:
    if _engine is not None:
        _engine.dispose()
