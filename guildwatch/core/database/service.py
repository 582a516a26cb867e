"""
DatabaseService: engine, sessions and transactions
==================================================

One instance per process, built from an immutable ``DatabaseConfigSnapshot``,
opened at startup, injected into every domain service and closed at
shutdown. There is no module-level engine.

Session rules
-------------
- ``get_session()``: reads. Nothing is committed.
- ``get_transaction()``: writes. Commits when the block exits cleanly,
  rolls back and re-raises otherwise. Service code never calls
  ``session.commit()`` itself.
- ``run_in_transaction(work)``: ``work(session)`` in a fresh transaction,
  re-run on transient driver errors (see ``DatabaseRetryPolicy``).

Backends
--------
- PostgreSQL (asyncpg): queue pool with pre-ping; every transaction sets
  ``statement_timeout``
- SQLite (aiosqlite): foreign keys enforced; BEGIN is emitted explicitly so
  SAVEPOINTs (``session.begin_nested()``) work; in-memory URLs share one
  connection; file URLs use NullPool under ENVIRONMENT=testing

``create_all`` is for development and tests; it is not a migration tool.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional, Type, TypeVar

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, Pool, StaticPool

from guildwatch.core.config.config import Config
from guildwatch.core.database.base import Base
from guildwatch.core.database.retry_policy import DatabaseRetryPolicy
from guildwatch.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class DatabaseInitializationError(RuntimeError):
    """No usable DATABASE_URL, or the engine could not be created."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before open() or after close()."""


def _configure_sqlite(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        # Disable the driver's implicit transactions; "begin" below owns them.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


@dataclass(frozen=True)
class DatabaseConfigSnapshot:
    url: str
    echo: bool
    pool_class: Type[Pool]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int = 30_000

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"

    @classmethod
    def from_config(cls, url: Optional[str] = None) -> DatabaseConfigSnapshot:
        """
        Snapshot Config's database settings, with an optional URL override.

        Raises:
            DatabaseInitializationError: The URL is empty
        """
        database_url = url or Config.DATABASE_URL
        if not database_url:
            raise DatabaseInitializationError("DATABASE_URL is not configured")

        pool_class: Type[Pool]
        if ":memory:" in database_url or database_url.endswith("sqlite+aiosqlite://"):
            pool_class = StaticPool
        elif Config.is_testing():
            pool_class = NullPool
        else:
            pool_class = AsyncAdaptedQueuePool

        return cls(
            url=database_url,
            echo=Config.DATABASE_ECHO,
            pool_class=pool_class,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
        )

    def engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.echo, "poolclass": self.pool_class}
        if self.pool_class is AsyncAdaptedQueuePool:
            kwargs.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_recycle=self.pool_recycle,
                pool_timeout=self.pool_timeout,
                pool_pre_ping=True,
            )
        if self.is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
        return kwargs


class DatabaseService:
    def __init__(
        self,
        config: DatabaseConfigSnapshot,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
    ) -> None:
        self._config = config
        self._retry_policy = retry_policy or DatabaseRetryPolicy.from_config()
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._lifecycle_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, url: Optional[str] = None) -> DatabaseService:
        return cls(DatabaseConfigSnapshot.from_config(url))

    @property
    def config(self) -> DatabaseConfigSnapshot:
        return self._config

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        self._ensure_open()
        assert self._engine is not None
        return self._engine

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """
        Create the engine and session factory. No-op when already open.

        Raises:
            DatabaseInitializationError: Engine creation failed
        """
        async with self._lifecycle_lock:
            if self._engine is not None:
                return

            try:
                engine = create_async_engine(self._config.url, **self._config.engine_kwargs())
            except Exception as exc:
                logger.error(
                    "Could not create database engine",
                    extra={"url_scheme": self._config.url_scheme},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

            if self._config.is_sqlite:
                _configure_sqlite(engine)
            self._engine = engine
            self._session_factory = async_sessionmaker(
                bind=engine, class_=AsyncSession, expire_on_commit=False
            )
            logger.info(
                "Database opened",
                extra={
                    "url_scheme": self._config.url_scheme,
                    "pool_class": self._config.pool_class.__name__,
                },
            )

    async def close(self) -> None:
        """Dispose the engine. Safe to call more than once."""
        async with self._lifecycle_lock:
            engine, self._engine, self._session_factory = self._engine, None, None
            if engine is None:
                return
            await engine.dispose()
            logger.info("Database closed")

    async def create_all(self) -> None:
        """Create missing tables from the ORM metadata."""
        import guildwatch.database.models  # noqa: F401  (registers the mappers)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def health_check(self) -> bool:
        """``SELECT 1``; False when closed or unreachable. Never raises."""
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except DBAPIError as exc:
            logger.warning(
                "Database health check failed",
                extra={"error_type": type(exc).__name__, "error": str(exc)},
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._session_factory is None or self._engine is None:
            raise DatabaseNotInitializedError(
                "DatabaseService.open() must be awaited before use"
            )

    async def _apply_statement_timeout(self, session: AsyncSession) -> None:
        if self._config.is_postgres:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {self._config.statement_timeout_ms}")
            )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session for reads; closed on exit without committing.

        Raises:
            DatabaseNotInitializedError: Service not open
        """
        self._ensure_open()
        assert self._session_factory is not None

        async with self._session_factory() as session:
            await self._apply_statement_timeout(session)
            yield session

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session wrapped in one transaction: commit on success, rollback and
        re-raise on any exception.

        Raises:
            DatabaseNotInitializedError: Service not open
        """
        self._ensure_open()
        assert self._session_factory is not None

        async with self._session_factory() as session:
            try:
                await self._apply_statement_timeout(session)
                yield session
                await session.commit()
            except DBAPIError as exc:
                await session.rollback()
                logger.warning(
                    "Transaction rolled back on database error",
                    extra={"error_type": type(exc).__name__, "error": str(exc.orig)},
                )
                raise
            except Exception:
                await session.rollback()
                raise

    async def run_in_transaction(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        """
        Run ``work(session)`` in its own transaction, retrying the whole unit.

        ``work`` may run more than once, so it must not carry state between
        attempts. IntegrityError and domain exceptions propagate on the first
        failure.
        """

        async def _attempt() -> T:
            async with self.get_transaction() as session:
                return await work(session)

        return await self._retry_policy.execute(
            _attempt, operation_name=operation_name, context=context
        )
