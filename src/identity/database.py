"""Database setup for accounts, roles and validation tokens."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import settings

DATABASE_URL = settings.database_url

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


def init_db() -> None:
    """Create database tables if they do not exist and seed the role catalog."""
    from . import models  # noqa: F401  register mappers on Base.metadata
    from .roles import seed_roles

    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        seed_roles(session)
        session.commit()
    finally:
        session.close()
