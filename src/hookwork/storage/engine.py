"""Engine and session factory for the automation store."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import Engine, create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from hookwork.storage.schema import Base, MetaRow

SCHEMA_VERSION = "1"


def create_store_engine(db_path: str = ":memory:", *, url: str | None = None) -> Engine:
    """Create a SQLAlchemy engine.

    *db_path* is a SQLite file path or ``":memory:"``; *url* (any SQLAlchemy
    URL) takes precedence when given. The in-memory database is shared by
    every connection of the engine so worker threads see the same data.
    """
    if url is not None:
        engine = create_engine(url, echo=False)
    elif db_path == ":memory:":
        engine = create_engine(
            "sqlite://",
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            f"sqlite:///{Path(db_path).expanduser()}",
            echo=False,
            connect_args={"check_same_thread": False},
        )

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):  # type: ignore[no-untyped-def]
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables and stamp the schema version on a new database."""
    Base.metadata.create_all(engine)
    with create_session_factory(engine)() as session:
        existing = session.execute(
            select(MetaRow).where(MetaRow.key == "schema_version")
        ).scalar_one_or_none()
        if existing is None:
            session.add(MetaRow(key="schema_version", value=SCHEMA_VERSION))
            session.commit()
