"""Database configuration."""
import gc
import logging
import sqlite3
import time
import weakref
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool, QueuePool

logger = logging.getLogger(__name__)

Base = declarative_base()

# Every engine handed out by create_sqlite_engine, so that all pools can be
# drained before a satellite folder is deleted.
_engines: "weakref.WeakSet[Engine]" = weakref.WeakSet()


def utc_now() -> datetime:
    """Naive UTC timestamp, the form SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_sqlite_engine(
    db_path: Path,
    read_only: bool = False,
    pooled: bool = True,
    timeout: float = 5.0,
    echo: bool = False,
) -> Engine:
    """Create an engine for one SQLite store file.

    Args:
        db_path: Database file location
        read_only: Open with ``mode=ro`` so nothing is ever created or written
        pooled: Keep connections in a pool; satellites pass False so that
            closing a session closes the file
        timeout: Seconds to wait on a lock held by another process
        echo: Log every SQL statement

    Returns:
        Registered engine
    """
    path = Path(db_path).absolute()
    if read_only:
        target = f"{path.as_uri()}?mode=ro"
    else:
        target = str(path)

    def connect() -> sqlite3.Connection:
        return sqlite3.connect(
            target,
            uri=read_only,
            timeout=timeout,
            check_same_thread=False,
        )

    engine = create_engine(
        "sqlite://",
        creator=connect,
        poolclass=QueuePool if pooled else NullPool,
        echo=echo,
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    _engines.add(engine)
    return engine


def session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def dispose_engine(engine: Engine) -> None:
    """Close every pooled connection of ``engine`` and forget it."""
    engine.dispose()
    _engines.discard(engine)


def release_all_connections(delay: float = 0.15) -> None:
    """Drain every connection pool, collect garbage, then give the OS time to drop file locks."""
    engines = list(_engines)
    for engine in engines:
        engine.dispose()
    gc.collect()
    if delay > 0:
        time.sleep(delay)
    logger.debug(f"Released connections of {len(engines)} engine(s)")
