"""Database engine construction."""

from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from inventory_engine.core.config import settings


def build_engine(database_url: str, echo: Optional[bool] = None) -> Engine:
    """Create an engine with the pooling/locking options for its backend.

    SQL echo follows ``settings.debug`` unless *echo* is given.
    """
    connect_args = {}
    pool_config = {}

    if database_url.startswith("sqlite"):
        # SQLite serializes writers itself; give waiting writers time to queue
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.sqlite_busy_timeout,
        }
        pool_config = {"pool_pre_ping": True}
    else:
        # PostgreSQL/MySQL connection pooling configuration
        pool_config = {
            "pool_size": 20,
            "max_overflow": 40,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }

    engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=settings.debug if echo is None else echo,
        **pool_config,
    )

    # Enable foreign key enforcement for SQLite
    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine

