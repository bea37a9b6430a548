"""
Database Session
Provides database session factory for use in the API, Celery tasks and other contexts.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import os

from .models import Base

# Get database URL from environment
# Default to a local SQLite file; set DATABASE_URL for PostgreSQL
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./recallbox.db")


def create_db_engine(url: str = DATABASE_URL):
    """Create an engine with settings suited to the backend."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before using
    )


# Create engine
engine = create_db_engine()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    """Create tables that do not exist yet."""
    Base.metadata.create_all(bind=bind or engine)
