from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

CreditBase = declarative_base()
TranscriptBase = declarative_base()


def build_session_factory(database_url: str, **engine_kwargs) -> Optional[sessionmaker]:
    """Engine + session factory for one store, or None when the URL is not configured."""
    if not database_url or not database_url.strip():
        return None
    engine_kwargs.setdefault("pool_pre_ping", True)
    engine = create_engine(database_url.strip(), **engine_kwargs)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
