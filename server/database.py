import logging
from typing import Callable, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from config import config

logger = logging.getLogger(__name__)

# Database configuration
DATABASE_URL = config.DATABASE_URL

# Create Base class for models
Base = declarative_base()


def create_database_engine(database_url: str) -> Engine:
    """
    Create a SQLAlchemy engine suited to the database behind the URL.
    SQLite gets a thread-agnostic connection, everything else a connection pool.
    """
    if database_url.startswith("sqlite"):
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            # One shared connection, otherwise every checkout sees an empty database
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=False,
            )
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
            echo=False,
        )

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=10,  # Number of connections to maintain
        max_overflow=20,  # Additional connections that can be created
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,  # Recycle connections after 1 hour
        echo=False,  # Set to True for SQL query logging
        connect_args={"connect_timeout": 10},
    )


# Create SQLAlchemy engine
engine = create_database_engine(DATABASE_URL)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _hide_credentials(database_url: str) -> str:
    return database_url.split("@")[1] if "@" in database_url else database_url.split("://")[0]


def check_database_health(db_engine: Optional[Engine] = None) -> dict:
    """
    Check database connectivity and health.
    Returns health status with detailed information.
    """
    db_engine = db_engine or engine
    database_url = str(db_engine.url)
    try:
        with db_engine.connect() as connection:
            result = connection.execute(text("SELECT 1 AS health_check"))
            health_check = result.fetchone()

            return {
                "status": "healthy",
                "message": "Database connection successful",
                "health_check": health_check[0] if health_check else None,
                "dialect": db_engine.dialect.name,
                "database_url": _hide_credentials(database_url),
            }
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        return {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}",
            "error_type": "OperationalError",
            "database_url": _hide_credentials(database_url),
        }
    except SQLAlchemyError as e:
        logger.error(f"Unexpected database error: {e}")
        return {
            "status": "unhealthy",
            "message": f"Unexpected database error: {str(e)}",
            "error_type": type(e).__name__,
            "database_url": _hide_credentials(database_url),
        }


def init_database(db_engine: Optional[Engine] = None) -> bool:
    """
    Initialize database tables.
    Creates all tables defined in models.
    """
    try:
        # Import models to ensure they're registered with Base
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=db_engine or engine)
        logger.info("Database tables created successfully")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        return False


def get_database_stats(db_engine: Optional[Engine] = None) -> dict:
    """
    Get table row counts for the tracking tables.
    """
    db_engine = db_engine or engine
    try:
        with db_engine.connect() as connection:
            table_counts = {}
            for table in ("sessions", "attention_metrics"):
                result = connection.execute(text(f"SELECT COUNT(*) FROM {table}"))
                count = result.fetchone()
                table_counts[table] = count[0] if count else 0

            return {"table_counts": table_counts, "dialect": db_engine.dialect.name}
    except SQLAlchemyError as e:
        logger.error(f"Failed to get database stats: {e}")
        return {"error": str(e)}


# Database session context manager for manual operations
class DatabaseSession:
    """Context manager for database sessions."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self.session_factory = session_factory or SessionLocal
        self.db: Optional[Session] = None

    def __enter__(self) -> Session:
        self.db = self.session_factory()
        return self.db

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.db:
            if exc_type is not None:
                self.db.rollback()
            else:
                self.db.commit()
            self.db.close()


# Export for use in other modules
__all__ = [
    "engine",
    "SessionLocal",
    "Base",
    "create_database_engine",
    "check_database_health",
    "init_database",
    "get_database_stats",
    "DatabaseSession",
]
