"""Shared SQLAlchemy declarative base and engine helpers."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def make_engine(connection_string: str) -> Engine:
    """
    Create an engine with database-specific configuration.

    Args:
        connection_string: Database connection string

    Returns:
        SQLAlchemy engine
    """
    if connection_string in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        return create_engine(
            connection_string,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if connection_string.startswith("sqlite"):
        # SQLite doesn't support pool_size and max_overflow
        return create_engine(connection_string, pool_pre_ping=True)
    return create_engine(
        connection_string,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def init_db(engine: Engine) -> None:
    """Create the parish, trash, audit and pending-operation tables."""
    # Imported for their side effect of registering models on Base
    from . import tables  # noqa: F401
    from .audit_trail import storage as audit_storage  # noqa: F401
    from .lifecycle import journal  # noqa: F401
    from .trash import storage as trash_storage  # noqa: F401

    Base.metadata.create_all(bind=engine)
