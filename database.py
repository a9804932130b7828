from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings


def make_engine(database_url: str, *, ledger_workers: int = 1) -> Engine:
    """Build an engine whose pool can serve every concurrent ledger read.

    Balance reads fan out over worker threads, each with its own session, so
    SQLite connections must be shareable across threads and other backends need
    at least one pooled connection per worker.
    """
    if database_url.startswith("sqlite"):
        eng = create_engine(
            database_url, connect_args={"check_same_thread": False}
        )
        event.listen(eng, "connect", enable_sqlite_pragmas)
        return eng
    return create_engine(
        database_url,
        pool_size=max(ledger_workers, 5),
        pool_pre_ping=True,
    )


def enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    # readers on other threads wait for the set-balance writer instead of failing
    cursor.execute("PRAGMA busy_timeout=5000;")
    cursor.close()


def make_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


_settings = get_settings()
engine = make_engine(
    _settings.database_url, ledger_workers=_settings.ledger_max_workers
)
SessionLocal = make_session_factory(engine)


class Base(DeclarativeBase):
    pass
