"""
Credential store database
SQLAlchemy engine and session management for the users table
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from screening_api.config import get_settings

DATABASE_URL = get_settings().DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create tables for all registered models"""
    from screening_api.models.user import User  # noqa: F401
    Base.metadata.create_all(bind=engine)
