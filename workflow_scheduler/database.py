"""
Database connection and session management.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from workflow_scheduler.config import Settings
from workflow_scheduler.core.exceptions import StoreError
from workflow_scheduler.models import Base


class Database:
    """Owns one engine and session factory for the lifetime of a process."""

    def __init__(self, url: str, **engine_kwargs: Any):
        self.url = url
        self.engine: Engine = create_engine(url, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        if settings.database_url.lower().startswith("sqlite"):
            return cls(settings.database_url, connect_args={"check_same_thread": False})
        return cls(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            echo=False,
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Yield a session that commits on success and rolls back on error.

        SQLAlchemy failures are re-raised as StoreError.
        """
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError(str(exc)) from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def init_db(self) -> None:
        """
        Create tables for all registered models.
        """
        Base.metadata.create_all(bind=self.engine)

    def check_connection(self) -> bool:
        """
        Return True when the database connection is healthy.
        """
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    def close(self) -> None:
        self.engine.dispose()
