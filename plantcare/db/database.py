"""Database engine and session configuration."""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from plantcare.config import get_settings

settings = get_settings()


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Let pysqlite honour SAVEPOINT inside an explicit transaction.

    The driver otherwise manages BEGIN on its own and releases savepoints
    too early, which breaks ``Session.begin_nested()``.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


# SQLite doesn't support pool_size/max_overflow
engine_kwargs = {
    "echo": settings.debug,
}

if not settings.database_url.startswith("sqlite"):
    engine_kwargs.update(
        {
            "pool_pre_ping": True,
            "pool_size": 5,
            "max_overflow": 10,
        }
    )
else:
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(settings.database_url, **engine_kwargs)

if settings.database_url.startswith("sqlite"):
    enable_sqlite_savepoints(engine)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def init_db() -> None:
    """Initialize database tables.

    Creates all tables defined in models if they don't exist.
    """
    from plantcare.db.models import Base

    Base.metadata.create_all(bind=engine)
