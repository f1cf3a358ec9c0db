from typing import Any, Generator

from loguru import logger
from sqlmodel import Session, SQLModel, create_engine

from app.core.config import get_settings
from app.models.domain import *

settings = get_settings()


def _engine_options(database_url: str) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        # Store calls run in worker threads
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,  # Enable connection health checks
        "pool_size": settings.DB_POOL_SIZE,  # Number of connections to maintain
        "max_overflow": settings.DB_MAX_OVERFLOW,  # Max extra connections when pool is full
    }


# Create SQLAlchemy engine
engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO_LOG,  # SQL query logging
    **_engine_options(settings.DATABASE_URL),
)


def get_db() -> Generator[Session, None, None]:
    """Get a database session"""
    with Session(engine) as session:
        yield session


def create_db_and_tables() -> None:
    """Create database tables if they don't exist."""
    try:
        with engine.connect() as conn:
            existing_tables = engine.dialect.get_table_names(conn)
            logger.info(f"Existing tables: {existing_tables}")

        logger.info("Creating database tables...")
        SQLModel.metadata.create_all(engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {str(e)}")
        raise


if __name__ == "__main__":
    create_db_and_tables()
