"""
Database Configuration Module
Async engine and session factory for the store of record.

Nothing here is module-global: the engine and the session factory are built
from Settings and handed to whoever needs them (UnitOfWork, test fixtures).
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from pawsitters.config import Settings

# Base for models
Base = declarative_base()


def create_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured DATABASE_URL.

    SQLite URLs skip the pool tuning options that only make sense for a
    network database.
    """
    options = {"echo": settings.sql_echo}
    sqlite = settings.database_url.startswith("sqlite")
    if not sqlite:
        options.update(
            pool_pre_ping=True,              # Verify connections before use
            pool_recycle=3600,               # Recycle connections after 1 hour
        )
    engine = create_async_engine(settings.database_url, **options)
    if sqlite:
        _explicit_sqlite_transactions(engine)
    return engine


def _explicit_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    The sqlite3 driver defers BEGIN until the first DML statement, so a
    SAVEPOINT issued before any write opens the transaction itself and its
    RELEASE commits. Emit BEGIN ourselves so savepoints nest inside it.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to one engine"""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create every table declared on Base"""
    # models must be imported so their tables are registered on Base.metadata
    from pawsitters import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_connections(engine: AsyncEngine) -> None:
    """
    Gracefully close all database connections.
    Call this on application shutdown.
    """
    await engine.dispose()
