"""
Database session management

The engine is owned by an explicitly constructed ``Database`` handle that is
created at startup, disposed at shutdown and passed to whatever needs it.
"""
from contextlib import contextmanager
from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator, Iterator, Optional
import logging

from app.config import settings
from app.models.base import Base

logger = logging.getLogger(__name__)


class Database:
    """Engine + session factory for one database URL"""

    def __init__(self, url: str, engine: Optional[Engine] = None, **engine_kwargs):
        self.url = url
        if engine is None:
            if url.startswith("postgresql"):
                engine_kwargs.setdefault("pool_size", settings.DATABASE_POOL_SIZE)
                engine_kwargs.setdefault("max_overflow", settings.DATABASE_MAX_OVERFLOW)
            engine = create_engine(
                url,
                pool_pre_ping=True,
                echo=settings.DATABASE_ECHO,
                **engine_kwargs
            )
        self.engine = engine
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

    @property
    def is_postgres(self) -> bool:
        return self.engine.dialect.name == "postgresql"

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session scope closed on exit; callers decide when to commit"""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        logger.info("Disposing database engine")
        self.engine.dispose()


def get_database(request: Request) -> Database:
    """Dependency returning the process-wide Database handle"""
    return request.app.state.database


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency function to get database session

    Usage in FastAPI routes:
        @router.get("/")
        def my_route(db: Session = Depends(get_db)):
            ...
    """
    db = get_database(request).SessionLocal()
    try:
        yield db
    finally:
        db.close()
