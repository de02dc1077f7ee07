# backend/app/database.py
from datetime import datetime
import logging
from typing import Any, Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .core.config import Settings

logger = logging.getLogger(__name__)

Base: DeclarativeMeta = declarative_base()


def create_db_engine(settings: Settings) -> Engine:
    """Build the engine for ``settings.database_url``; owned by the application root."""
    url = settings.database_url
    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads
        pool_kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in {"sqlite://", "sqlite:///"}:
            pool_kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=settings.database_echo, **pool_kwargs)
    else:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=20,  # Number of persistent connections
            max_overflow=10,  # Maximum overflow connections
            pool_timeout=30,  # Timeout for getting connection
            pool_recycle=3600,  # Recycle connections after 1 hour
            pool_pre_ping=True,  # Test connections before using
            echo=settings.database_echo,
            connect_args={"connect_timeout": 10, "application_name": "thoughtcloud_backend"},
        )

    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def get_db(request: Request) -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db: Session = request.app.state.session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
