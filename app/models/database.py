from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.config import settings


# Connection execution option marking a read-only transaction; SQLite opens
# it with a deferred BEGIN so readers do not take the write lock.
DEFERRED_BEGIN = "deferred_begin"


class Base(DeclarativeBase):
    pass


def build_engine(url: str) -> Engine:
    """Create an engine; SQLite connections queue writers on the database lock."""
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, pool_size=5)

    engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})

    # pysqlite's implicit BEGIN is deferred, which turns concurrent writers
    # into immediate "database is locked" errors.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        if conn.get_execution_options().get(DEFERRED_BEGIN):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
