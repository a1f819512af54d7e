from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from modulegate.core.config import get_settings


def enable_sqlite_savepoints(engine: Engine) -> Engine:
    """Let pysqlite honour SAVEPOINT by taking over transaction control.

    The driver otherwise issues its own BEGIN/COMMIT and silently breaks
    nested transactions.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine, applying the SQLite adjustments when needed."""
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        engine = create_engine(database_url, connect_args=connect_args, **kwargs)
        return enable_sqlite_savepoints(engine)
    return create_engine(database_url, pool_pre_ping=True, **kwargs)


settings = get_settings()

engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
