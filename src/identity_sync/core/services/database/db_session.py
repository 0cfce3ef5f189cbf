"""Database engine and session factory used across the application."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from loguru import logger
from sqlalchemy import StaticPool, text
from sqlmodel import Session, SQLModel, create_engine

from src.identity_sync.runtime.config.config_data import ConfigData
from src.identity_sync.runtime.context import get_config


class DbSessionService:
    def __init__(self, config: ConfigData | None = None):
        """Initialize the shared database engine and session factory."""
        main_config = config or get_config()
        db_config = main_config.database

        logger.info(
            "Configuring database engine for environment: {}",
            main_config.app.environment,
        )
        self._engine = create_engine(
            db_config.connection_string, **self._engine_kwargs(main_config)
        )

    def _engine_kwargs(self, config: ConfigData) -> dict[str, Any]:
        db_config = config.database
        url = db_config.url

        if url.startswith("sqlite"):
            kwargs: dict[str, Any] = {
                "echo": False,
                "connect_args": {"check_same_thread": False, "timeout": 20},
            }
            if ":memory:" in url:
                # One shared connection, otherwise every session sees an empty database
                kwargs["poolclass"] = StaticPool
            if config.app.environment == "production":
                logger.warning(
                    "SQLite is not recommended for production use. "
                    "Consider PostgreSQL for better performance and reliability."
                )
            return kwargs

        return {
            "pool_size": db_config.pool_size,
            "max_overflow": db_config.max_overflow,
            "pool_timeout": db_config.pool_timeout,
            "pool_recycle": db_config.pool_recycle,
            "pool_pre_ping": True,
            "echo": False,
            "connect_args": {
                "application_name": f"{config.app.environment}_identity_sync",
                "connect_timeout": 30,
            },
        }

    def create_all(self) -> None:
        """Create all database tables."""
        from src.identity_sync.entities.core.identity_record import (  # noqa: F401
            IdentityRecordTable,
        )

        SQLModel.metadata.create_all(self._engine)
        logger.info("Database initialized with tables.")

    def get_session(self) -> Session:
        """Return a new SQLModel session bound to the shared engine."""
        return Session(self._engine, expire_on_commit=False, autoflush=True)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Context manager style helper for repositories and tests."""
        db = self.get_session()
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.bind(error_type=type(e).__name__).error(
                "Database transaction failed: {}", e
            )
            raise
        finally:
            db.close()

    def health_check(self) -> bool:
        """Perform a health check on the database connection."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.bind(error_type=type(e).__name__).error(
                "Database health check failed: {}", e
            )
            return False

    def dispose(self) -> None:
        self._engine.dispose()
