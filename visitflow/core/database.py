# File: database.py
# Path: visitflow/core/database.py

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from visitflow.core.config import settings

# Shared declarative base for all models
Base = declarative_base()


def _engine_options() -> dict:
    if settings.is_sqlite:
        options = {"connect_args": {"check_same_thread": False}}
        # In-memory databases must share one connection across the pool
        if settings.DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c timezone=utc",
            "connect_timeout": 5,
            "application_name": "VisitflowBackend",
        },
    }


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.database_echo,
    **_engine_options(),
)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False
)


def get_db():
    """
    Dependency function for FastAPI endpoints.
    Creates a new database session for each request.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_database_connection():
    """
    Test database connection health.
    Returns True if connection is successful, False otherwise.
    """
    import logging
    from sqlalchemy import text
    logger = logging.getLogger(__name__)

    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("Database connection test successful")
        return True
    except Exception as e:
        logger.error(f"Database connection test failed: {str(e)}")
        return False
