from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Callable, Generator
import redis
from fastapi import Depends
from .config import settings

def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Request threads share the file; writers wait on the busy timeout
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,  # Recycle connections after 30 minutes
    }

engine = create_engine(
    settings.get_database_url,
    **_engine_options(settings.get_database_url)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Redis is only used for rate limiting; the client connects lazily
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

def get_session_factory() -> Callable[[], Session]:
    """Session factory for components that open their own sessions."""
    return SessionLocal

# Database dependency
def get_db(
    session_factory: Callable[[], Session] = Depends(get_session_factory)
) -> Generator[Session, None, None]:
    """Get database session."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()

# Redis dependency
def get_redis():
    """Get Redis client."""
    return redis_client

# Database initialization
def init_db():
    """Initialize database tables."""
    # Import models so their tables are registered on Base.metadata
    from ..models import appointment, doctor, patient, session_token, user  # noqa: F401
    Base.metadata.create_all(bind=engine)
