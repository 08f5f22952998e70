from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from inventory_tracker.config import get_settings

settings = get_settings()


def _engine_options(database_url: str) -> dict:
    """Connection pool options suited to the configured backend."""
    if make_url(database_url).get_backend_name() == "sqlite":
        # Import workers share the engine across threads
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}


# Create SQLAlchemy engine with connection pooling
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency to get database session.
    Yields a database session and closes it after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """
    Dependency returning the session factory itself.

    Used by components that open their own sessions, such as the CSV
    import workers, which must not share the request-scoped session.
    """
    return SessionLocal
