# medibot/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import get_settings

settings = get_settings()

if settings.is_sqlite:
    # Background notification tasks open their own sessions on other threads
    engine = create_engine(settings.database_url, connect_args={"check_same_thread": False})
else:
    engine = create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session; services commit explicitly."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    # Model classes must be imported before metadata knows about them
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_tables():
    from . import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
