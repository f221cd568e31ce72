from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from cashdesk.config import settings

# Позволяет подменять engine в тестах
engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


@event.listens_for(Engine, "connect")
def _sqlite_pragmas(dbapi_conn, _):
    """SQLite по умолчанию не проверяет внешние ключи (ON DELETE RESTRICT у смен и движений)."""
    module = type(dbapi_conn).__module__
    if not module.startswith("sqlite3"):
        return
    cur = dbapi_conn.cursor()
    try:
        cur.execute("PRAGMA foreign_keys=ON;")
        cur.execute("PRAGMA busy_timeout=30000;")
    finally:
        cur.close()


def supports_row_locks(bind) -> bool:
    """True, если диалект умеет SELECT ... FOR UPDATE / FOR SHARE."""
    dialect = getattr(bind, "dialect", None)
    return getattr(dialect, "name", None) not in (None, "sqlite")


def get_session_override(session_factory: Optional[sessionmaker] = None) -> Session:
    """Возвращает сессию, используя переданную фабрику (для тестов) или глобальную."""
    factory = session_factory or SessionLocal
    return factory()


@contextmanager
def db_session(
    session_factory: Optional[sessionmaker] = None,
    session: Optional[Session] = None,
) -> Iterator[Session]:
    """
    Контекстный менеджер для работы с БД в пределах одной транзакции.

    Если передан session, он используется без авто-commit/rollback (управляет вызывающий код).
    Иначе создаётся новая сессия из session_factory/SessionLocal: при успехе commit,
    при любом исключении rollback, так что частично записанного состояния не остаётся.
    """
    if session is not None:
        yield session
        return

    local_session = get_session_override(session_factory)
    try:
        yield local_session
        local_session.commit()
    except Exception:
        local_session.rollback()
        raise
    finally:
        local_session.close()
