from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        # sqlite3 busy timeout: a locked database fails instead of hanging
        connect_args["timeout"] = settings.commit_timeout_secs
    eng = create_engine(settings.database_url, connect_args=connect_args)
    if settings.database_url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def unit_of_work(
    session_factory: Optional[Callable[[], Session]] = None,
    *,
    commit_timeout_secs: Optional[float] = None,
) -> Iterator[Session]:
    """Open a session scoped to a single record's writes.

    Commits when the block exits cleanly, rolls back on any exception and
    always closes the session. On PostgreSQL the statement timeout is bounded
    by ``commit_timeout_secs`` for the lifetime of the transaction; SQLite
    relies on the busy timeout configured on the engine.
    """
    factory = session_factory or SessionLocal
    if commit_timeout_secs is None:
        commit_timeout_secs = get_settings().commit_timeout_secs
    session: Session = factory()
    try:
        bind = session.get_bind()
        if bind.dialect.name == "postgresql":
            timeout_ms = int(commit_timeout_secs * 1000)
            session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
