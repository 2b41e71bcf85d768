import os
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from biowell.db.models import Base

DB_PATH = os.getenv("DB_PATH", "/var/data/biowell.db")


def _sqlite_pragmas(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(db_path: str) -> Engine:
    Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
    built = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    event.listen(built, "connect", _sqlite_pragmas)
    return built


engine = make_engine(DB_PATH)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def configure_database(db_path: str) -> None:
    """Point the app at another SQLite file; existing sessions keep their old binding."""
    global DB_PATH, engine
    DB_PATH = db_path
    engine = make_engine(db_path)
    SessionLocal.configure(bind=engine)


def create_tables() -> None:
    Base.metadata.create_all(bind=engine)


def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
