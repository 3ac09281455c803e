from typing import Generator
from urllib.parse import urlparse

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from creatorpay.config import settings


# -----------------------
# SQLAlchemy Engine
# -----------------------
def make_engine(url: str) -> Engine:
    """
    Build an engine for Postgres (production) or SQLite (development/tests).
    """
    scheme = urlparse(url).scheme
    if scheme.startswith("sqlite"):
        # Request handlers and the worker thread pool share connections
        return create_engine(
            url,
            future=True,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    if not scheme.startswith("postgresql"):
        raise RuntimeError(
            f"Unsupported DATABASE_URL scheme '{scheme}'. Use Postgres or SQLite."
        )

    return create_engine(
        url,
        future=True,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def make_session_factory(bind: Engine) -> sessionmaker:
    # expire_on_commit=False: fulfillment hands detached rows back to callers
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


engine = make_engine(settings.DATABASE_URL)

SessionLocal = make_session_factory(engine)

# Base for ALL models
Base = declarative_base()


# -----------------------
# Dependency
# -----------------------
def get_db() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
