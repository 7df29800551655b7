import os
from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./eligibility.db")

Base = declarative_base()


def make_engine(url: str, **kwargs: Any) -> Engine:
    """Engine for ``url``; SQLite connections may cross threads (FastAPI threadpool, batch workers)."""
    connect_args: Dict[str, Any] = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        # an in-memory database only exists on its one connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs.setdefault("poolclass", StaticPool)
    return create_engine(url, connect_args=connect_args, future=True, **kwargs)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind, future=True)


engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)


def get_db():
    from sqlalchemy.orm import Session

    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None) -> None:
    """Create the profile, program, rule and result-cache tables."""
    from backend import db_models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
