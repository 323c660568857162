"""
Database engine and session factory.
Part of Infrastructure layer.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from authgate.core.config import Settings

Base = declarative_base()


def create_session_factory(database_url: str, **engine_options) -> sessionmaker:
    """
    Create a session factory bound to a new engine.

    Args:
        database_url: SQLAlchemy database URL
        **engine_options: Passed through to create_engine

    Returns:
        Configured sessionmaker
    """
    engine = create_engine(database_url, **engine_options)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def session_factory_from_settings(settings: Settings, **engine_options) -> sessionmaker:
    return create_session_factory(settings.DATABASE_URL, **engine_options)
