from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./iamaas.db"


def create_db_engine(url: str, *, echo: bool = False) -> Engine:
    """SQLite shares one connection across threads; other backends get a checked pool."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=echo, pool_pre_ping=True)


DATABASE_URL = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
engine = create_db_engine(DATABASE_URL, echo=os.getenv("IAMAAS_DB_ECHO", "").lower() in {"1", "true"})


def init_db(engine: Engine) -> None:
    import iamaas.models  # noqa: F401  registers the tables

    SQLModel.metadata.create_all(engine)
    logger.info("Database schema ready on %s", engine.url.render_as_string(hide_password=True))


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@contextmanager
def session_scope() -> Iterator[Session]:
    session = Session(engine)
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
