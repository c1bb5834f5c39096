from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

from loyalfy.config import DATABASE_URL

connect_args = {}
if DATABASE_URL.startswith("postgres"):
    connect_args = {"options": "-c timezone=utc"}
elif DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def enable_sqlite_savepoints(target_engine) -> None:
    """pysqlite defers BEGIN itself, which breaks SAVEPOINT; let SQLAlchemy emit it."""

    @event.listens_for(target_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


if engine.dialect.name == "sqlite":
    enable_sqlite_savepoints(engine)


def utcnow() -> datetime:
    # Keep naive UTC timestamps to match existing DB column types/semantics.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
