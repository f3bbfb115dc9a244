from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from taquilla.core.config import settings


class Base(DeclarativeBase):
    pass


def make_engine(database_url: str):
    kw = dict(pool_pre_ping=True)
    if database_url.startswith("sqlite"):
        # timeout = busy wait (seconds) before sqlite reports "database is locked"
        kw["connect_args"] = {"check_same_thread": False, "timeout": 15}

    engine = create_engine(database_url, **kw)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_connection, _):
            # Let SQLAlchemy emit BEGIN itself (see _sqlite_begin).
            dbapi_connection.isolation_level = None
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.close()

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            # Take the write lock up front so concurrent writers queue instead of deadlocking.
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
