import redis
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rentbook.core.config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    connect_args=connect_args,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_redis():
    """Redis dependency for FastAPI; None when REDIS_URL is not configured"""
    if not settings.REDIS_URL:
        return None
    return redis.Redis.from_url(settings.REDIS_URL)
