"""Database engine and request-scoped sessions"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.models.base import Base
from app.core.config import settings


def engine_options(database_url: str) -> dict:
    """create_engine keyword arguments for a database URL"""
    if database_url.startswith("sqlite"):
        # Request handlers run in a threadpool
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 3600}


engine = create_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Yield a session for one request and close it afterwards"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create any missing tables; migrations are handled by Alembic"""
    import app.models  # noqa: F401 - registers every model with Base.metadata
    Base.metadata.create_all(bind=engine)
