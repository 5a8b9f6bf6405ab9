# classification/db.py
"""
SQLAlchemy engine and session factory.

The database URL comes from ``Settings``; nothing here reads the
environment.  ``session_scope`` is the context-manager form used by scripts,
the FastAPI dependency lives in ``main.py``.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, TimeoutError
from sqlalchemy.orm import sessionmaker

from classification.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str) -> Engine:
    kwargs = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create missing tables."""
    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(factory: sessionmaker):
    """Yield a session, closing it afterwards."""
    try:
        db = factory()
    except TimeoutError:
        logger.error("Connection pool exhausted (all connections in use)")
        raise
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise

    try:
        yield db
    finally:
        db.close()
