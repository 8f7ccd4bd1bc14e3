import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from ...core.config import Settings, get_settings
from ...core.exceptions import DatabaseError

logger = logging.getLogger(__name__)

# Import all models here to ensure they're registered with SQLModel.metadata
from . import models  # noqa: E402,F401

# Statements are logged up to this many characters
SQL_LOG_LIMIT = 2000


class SqlConnection:
    """
    Executes complete SQL statements on one database connection.

    Statements are passed to the driver untouched: no bound parameters,
    so colons and percent signs inside literals are left alone.
    """

    def __init__(self, connection: Connection):
        self._connection = connection

    def exec(self, sql: str) -> int:
        """Execute one statement; returns the affected row count (-1 if unknown)."""
        self._log(sql)
        try:
            result = self._connection.exec_driver_sql(sql, execution_options={"no_parameters": True})
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"SQL execution failed: {e}")
            raise DatabaseError(f"SQL execution failed: {e}", operation="exec")

    def query(self, sql: str) -> List[Any]:
        self._log(sql)
        try:
            result = self._connection.exec_driver_sql(sql, execution_options={"no_parameters": True})
            return list(result.fetchall())
        except SQLAlchemyError as e:
            logger.error(f"SQL query failed: {e}")
            raise DatabaseError(f"SQL query failed: {e}", operation="query")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        SQLModel session joined to this connection's transaction.

        Pending objects are flushed on exit. Committing stays with the
        owner of the transaction.
        """
        session = Session(bind=self._connection, join_transaction_mode="rollback_only")
        try:
            yield session
            session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Database session error: {e}")
            raise DatabaseError(f"Database operation failed: {e}", operation="session")
        finally:
            session.close()

    def _log(self, sql: str) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            if len(sql) > SQL_LOG_LIMIT:
                logger.debug(f"{sql[:SQL_LOG_LIMIT]}... ({len(sql)} characters)")
            else:
                logger.debug(sql)


class DatabaseManager:
    """
    Database connection manager.

    Owns the SQLAlchemy engine, hands out transactional SqlConnections
    for staging statements and SQLModel sessions for mapped tables.
    """

    def __init__(self, settings: Optional[Settings] = None, database_url: Optional[str] = None):
        self.settings = settings or get_settings()
        self.database_url = database_url or self.settings.database_url
        self._engine: Optional[Engine] = None

    def _get_database_config(self) -> dict:
        """Get database configuration based on URL."""
        config = {
            "echo": self.settings.database_echo,
            "pool_pre_ping": True,
        }

        if self.database_url.startswith("sqlite"):
            config["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.database_url or self.database_url == "sqlite://":
                config["poolclass"] = StaticPool

        return config

    def _create_engine(self) -> Engine:
        try:
            engine = create_engine(self.database_url, **self._get_database_config())
            logger.info(f"Database engine created: {engine.url.render_as_string(hide_password=True)}")
            return engine
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"Failed to create database engine: {e}")
            raise DatabaseError(f"Database engine creation failed: {e}", operation="connect")

    def get_engine(self) -> Engine:
        """Get or create database engine."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def init_db(self) -> None:
        """Create mapped system tables (surrogate key map)."""
        try:
            SQLModel.metadata.create_all(self.get_engine())
        except SQLAlchemyError as e:
            raise DatabaseError(f"Creating system tables failed: {e}", operation="init_db")

    @contextmanager
    def transaction(self) -> Iterator[SqlConnection]:
        """
        Open a transaction; commit on success, roll back on any error.
        """
        engine = self.get_engine()
        try:
            with engine.begin() as connection:
                logger.debug(f"Transaction started: {id(connection)}")
                yield SqlConnection(connection)
        except SQLAlchemyError as e:
            logger.error(f"Transaction failed: {e}")
            raise DatabaseError(f"Database transaction failed: {e}", operation="transaction")

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """Get database session with automatic cleanup."""
        session = Session(self.get_engine())

        try:
            yield session
            session.commit()

        except SQLAlchemyError as e:
            logger.error(f"Database session error: {e}")
            session.rollback()
            raise DatabaseError(f"Database operation failed: {e}")

        except Exception:
            session.rollback()
            raise

        finally:
            session.close()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.debug("Database engine disposed")
