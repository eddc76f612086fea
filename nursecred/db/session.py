"""
Database session management using SQLModel.
Provides the engine, table creation and the session dependency for routes.
"""

from pathlib import Path
from typing import Generator

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from nursecred.core.config import settings


def build_engine(database_uri: str, echo: bool = False) -> Engine:
    """Create an engine with settings suited to the database backend."""
    if database_uri.startswith("sqlite"):
        # Make sure the directory of a file-based database exists
        if database_uri.startswith("sqlite:///") and ":memory:" not in database_uri:
            Path(database_uri.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            database_uri,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    # pool_pre_ping ensures connections are alive before using them
    return create_engine(
        database_uri,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


engine = build_engine(settings.SQLALCHEMY_DATABASE_URI, echo=settings.DEBUG)


def init_db(bind: Engine = engine) -> None:
    """Create all tables registered on the SQLModel metadata."""
    # Import models so their tables are registered
    from nursecred.models import credential, exam, file, question, user  # noqa: F401

    SQLModel.metadata.create_all(bind)


def get_session() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session for FastAPI routes.

    Yields:
        Database session instance
    """
    with Session(engine) as session:
        yield session
