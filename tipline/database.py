"""Database engine and session management."""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from tipline.config import Settings, get_settings


def build_engine(settings: Settings) -> Engine:
    """SQLite for local runs and tests, a pooled PostgreSQL engine otherwise."""
    if settings.database_url.startswith("sqlite"):
        # Request handlers run in a threadpool
        return create_engine(settings.database_url, connect_args={"check_same_thread": False})

    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


engine = build_engine(get_settings())
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
