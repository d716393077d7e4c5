import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool


logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_engine_url: Optional[str] = None


def _database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./clusterlogin.db")


def get_engine() -> Engine:
    """Return a SQLModel engine, creating it if needed."""
    global _engine, _engine_url
    database_url = _database_url()
    if _engine is None or database_url != _engine_url:
        connect_args = {}
        engine_kwargs = {"echo": False}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if database_url == "sqlite://":
                engine_kwargs["poolclass"] = StaticPool
        _engine = create_engine(database_url, connect_args=connect_args, **engine_kwargs)
        _engine_url = database_url
    return _engine


def init_db() -> None:
    """Create the host tables if they do not exist yet.

    In-memory sqlite (``sqlite://``) is reset on every call so tests start
    from an empty matrix.
    """
    # Table classes must be registered on the metadata before create_all.
    from . import models  # noqa: F401

    engine = get_engine()
    if _database_url() == "sqlite://":
        SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)


@contextmanager
def get_session_ctx() -> Iterator[Session]:
    with Session(get_engine()) as session:
        yield session
