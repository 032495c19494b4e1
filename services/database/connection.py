"""Database connection management

One engine per process, created lazily from StorageConfig.

Design:
- Lazy: the engine is created on first use
- Optional: without a configured URL there is no engine and storage reports
  itself disconnected
- Test friendly: pass an explicit URL (``sqlite://`` for in-memory) or call
  ``reset_db_connection()``
"""

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Catalog database connection

    Usage:
    ```python
    db = get_db_connection()
    with db.get_session() as session:
        product = session.get(Product, 1)
    ```
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        if database_url is None:
            from services.config import get_storage_config

            storage_config = get_storage_config()
            database_url = storage_config.database_url
            echo = echo or storage_config.echo_sql

        self.database_url = database_url
        self._engine = None

        if not database_url:
            logger.info("No catalog database configured; storage stays disconnected")
            return

        connect_args = {}
        kwargs = {}
        if database_url.startswith("sqlite"):
            # SQLite connections are shared across the model worker threads
            connect_args["check_same_thread"] = False
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool

        self._engine = create_engine(database_url, echo=echo, connect_args=connect_args, **kwargs)
        logger.info("Catalog database engine created: %s", self._engine.url.render_as_string(hide_password=True))

    @property
    def engine(self):
        return self._engine

    def ping(self) -> bool:
        """Run a trivial statement; False when there is no engine or it fails."""
        if self._engine is None:
            return False
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.warning("Catalog database unreachable: %s", exc)
            return False

    def create_tables(self):
        """Create all catalog tables (development and tests)."""
        from .models import Customer, Order, OrderLine, Product  # noqa: F401

        if self._engine is None:
            raise RuntimeError("no database configured")
        SQLModel.metadata.create_all(self._engine)
        logger.info("Catalog tables created")

    def get_session(self) -> Session:
        if self._engine is None:
            raise RuntimeError("no database configured")
        return Session(self._engine)

    def dispose(self):
        if self._engine is not None:
            self._engine.dispose()


_db_connection: Optional[DatabaseConnection] = None


def get_db_connection() -> DatabaseConnection:
    """Process-wide connection built from StorageConfig."""
    global _db_connection
    if _db_connection is None:
        _db_connection = DatabaseConnection()
    return _db_connection


def reset_db_connection():
    """Dispose and forget the process-wide connection (tests)."""
    global _db_connection
    if _db_connection is not None:
        _db_connection.dispose()
        _db_connection = None
        logger.debug("Catalog database connection reset")
