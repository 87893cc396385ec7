"""Database connection and session management."""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from leadfunnel.errors import StoreUnavailableError
from leadfunnel.logging_config import get_logger
from leadfunnel.settings import settings
from leadfunnel.storage.models import Base

logger = get_logger(__name__)


def _engine_options(database_url: str, timeout: float) -> dict[str, Any]:
    """Engine arguments bounding every store call by ``timeout`` seconds."""
    url = make_url(database_url)
    backend = url.get_backend_name()
    if backend == "sqlite":
        options: dict[str, Any] = {
            "connect_args": {"timeout": timeout, "check_same_thread": False},
        }
        # In-memory databases use a singleton pool with no checkout wait
        if url.database not in (None, "", ":memory:"):
            options["pool_timeout"] = timeout
        return options
    options = {"pool_timeout": timeout}
    if backend == "postgresql":
        options["connect_args"] = {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return options


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None, timeout: float | None = None):
        """Initialize database connection.

        Args:
            database_url: Database URL (defaults to settings)
            timeout: Store call timeout in seconds (defaults to settings)
        """
        self.database_url = database_url or settings.database_url
        self.timeout = timeout or settings.store_timeout_seconds
        self.engine = create_engine(
            self.database_url,
            echo=False,
            pool_pre_ping=True,
            **_engine_options(self.database_url, self.timeout),
        )
        if self.engine.dialect.name == "sqlite":
            self._enable_sqlite_transactions()
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        logger.info("database_initialized", url=self.engine.url.render_as_string(hide_password=True))

    def _enable_sqlite_transactions(self) -> None:
        """Let SQLAlchemy own BEGIN so SAVEPOINTs and write locks behave.

        pysqlite defers BEGIN until the first write, which breaks nested
        transactions and lets two writers deadlock on lock upgrade.
        """

        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

        @event.listens_for(self.engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    def create_tables(self) -> None:
        """Create all tables in the database."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("tables_created")

    def drop_tables(self) -> None:
        """Drop all tables from the database."""
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("tables_dropped")

    def dispose(self) -> None:
        """Close all pooled connections."""
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a transactional scope for database operations.

        Timeouts and connection failures surface as ``StoreUnavailableError``.

        Yields:
            Database session
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except (OperationalError, PoolTimeoutError) as exc:
            session.rollback()
            logger.error("store_unavailable", error=str(exc))
            raise StoreUnavailableError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# Global database instance
db = Database()
