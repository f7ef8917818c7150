from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.schema import MetaData

from streamsync.infra.settings import settings

# Deterministic constraint/index names (prevents Alembic churn)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


_engine: Engine | None = None
_session_local: sessionmaker | None = None


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    # pysqlite defers BEGIN and breaks SAVEPOINT; take over transaction control.
    # IMMEDIATE takes the write lock up front so concurrent writers wait on the
    # busy timeout instead of failing a lock upgrade.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_conn, _):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _install_postgres_hooks(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_search_path(dbapi_conn, _):
        with dbapi_conn.cursor() as cur:
            cur.execute("SET search_path TO public")


def create_db_engine(db_url: str, *, echo: bool = False) -> Engine:
    """Create an engine for ``db_url`` with dialect-appropriate connection hooks."""
    if db_url.startswith("sqlite"):
        kwargs: dict[str, object] = {"connect_args": {"check_same_thread": False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(db_url, echo=echo, future=True, **kwargs)
        _install_sqlite_transaction_hooks(engine)
        return engine

    engine = create_engine(
        db_url,
        echo=echo,
        pool_pre_ping=True,
        future=True,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        connect_args={"connect_timeout": settings.connect_timeout}
        if "postgresql" in db_url
        else {},
    )
    if "postgresql" in db_url:
        _install_postgres_hooks(engine)
    return engine


def get_engine(db_url: str | None = None, for_test: bool = False) -> Engine:
    """Get or create a database engine.

    If ``for_test`` is True and ``settings.test_database_url`` is set, that URL is used.
    Otherwise falls back to the provided ``db_url`` or the default ``settings.database_url``.
    The default engine is created on first use and reused afterwards.
    """
    global _engine

    if for_test and settings.test_database_url:
        return create_db_engine(settings.test_database_url)
    if db_url and db_url != settings.database_url:
        return create_db_engine(db_url)

    if _engine is None:
        _engine = create_db_engine(settings.database_url, echo=settings.echo_sql)
    return _engine


def get_sessionmaker(for_test: bool = False) -> sessionmaker:
    """Get a session factory.

    Returns the global sessionmaker for default usage. When ``for_test`` is True,
    returns a temporary sessionmaker bound to a test engine.
    """
    global _session_local

    if for_test:
        test_engine = get_engine(for_test=True)
        return sessionmaker(bind=test_engine, autoflush=False, autocommit=False, future=True)

    if _session_local is None:
        _session_local = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            autocommit=False,
            future=True,
        )
    return _session_local


def configure(session_factory: sessionmaker | None) -> None:
    """Replace the process-wide session factory (``None`` resets to lazy default)."""
    global _session_local
    _session_local = session_factory


def get_session(for_test: bool = False) -> Generator[Session, None, None]:
    """Get a database session for dependency injection."""
    db = get_sessionmaker(for_test=for_test)()
    try:
        yield db
    finally:
        db.close()
