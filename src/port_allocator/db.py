# src/port_allocator/db.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .settings import settings

logger = logging.getLogger(__name__)


# psycopg3 uses 'postgresql+psycopg' instead of 'postgresql+psycopg2'
def get_sqlalchemy_url(url: Optional[str] = None) -> str:
    url = url or settings.sqlalchemy_url
    if 'postgresql+psycopg2' in url:
        url = url.replace('postgresql+psycopg2', 'postgresql+psycopg')
    elif url.startswith('postgresql://'):
        url = url.replace('postgresql://', 'postgresql+psycopg://')
    return url


def _connect_args(url: str) -> Dict[str, Any]:
    if url.startswith("postgresql"):
        return {
            "options": "-c statement_timeout=30000",  # 30 second timeout
            # Prevent duplicate prepared statement errors across pooled connections
            # by disabling psycopg's automatic server-side prepared statements.
            "prepare_threshold": 0,
        }
    if url.startswith("sqlite"):
        # Per-entity locks serialize writers across threads.
        return {"check_same_thread": False}
    return {}


def make_engine(url: Optional[str] = None, **kwargs: Any) -> Engine:
    url = get_sqlalchemy_url(url)
    options: Dict[str, Any] = {"connect_args": _connect_args(url)}
    if url.startswith("postgresql"):
        options.update(pool_pre_ping=True, pool_recycle=300)
    options.update(kwargs)
    return create_engine(url, **options)


engine = make_engine()

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db(bind: Optional[Engine] = None) -> None:
    # Safe if tables already exist
    from .models import Base

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Schema ready on %s", (bind or engine).url.render_as_string(hide_password=True))
