# cashbox/models/base.py
from __future__ import annotations

from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from cashbox.config import settings as app_settings

Base = declarative_base()


def _serialize_sqlite_writers(eng: Engine) -> None:
    """
    Every transaction starts with BEGIN IMMEDIATE, so the database write lock
    is taken before the first read. Two appends to the same box can then never
    observe the same previous balance. pysqlite's own BEGIN handling has to be
    switched off for this (and for SAVEPOINT to behave).
    """

    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_conn, _record):
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str | None = None) -> Engine:
    url = url or app_settings.DATABASE_URL

    # SQLite: make the path absolute and create the folder
    if url.startswith("sqlite:///") and ":memory:" not in url:
        rel = url[len("sqlite:///"):]  # e.g. ./db/cashbox.db
        db_file = Path(rel)
        if not db_file.is_absolute():
            db_file = Path.cwd() / db_file
        db_file.parent.mkdir(parents=True, exist_ok=True)
        eng = create_engine(
            f"sqlite:///{db_file.as_posix()}",
            connect_args={
                "check_same_thread": False,  # sqlite only
                "timeout": app_settings.SQLITE_BUSY_TIMEOUT,
            },
            future=True,
            pool_pre_ping=True,
        )
        _serialize_sqlite_writers(eng)
        return eng

    # Other DBs (Postgres/MySQL) rely on SELECT ... FOR UPDATE in the ledger store
    return create_engine(url, future=True, pool_pre_ping=True)


def build_sessionmaker(eng: Engine) -> sessionmaker:
    return sessionmaker(bind=eng, autocommit=False, autoflush=False, future=True)


engine = build_engine()
SessionLocal = build_sessionmaker(engine)


def get_db() -> Iterator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
