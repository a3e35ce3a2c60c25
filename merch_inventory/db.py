from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from merch_inventory.config import settings
from merch_inventory.models import Base


def build_engine(url: str) -> Engine:
    connect_args: dict = {}
    if url.startswith('sqlite'):
        connect_args = {'check_same_thread': False, 'timeout': settings.sqlite_busy_timeout_seconds}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


engine = build_engine(settings.database_url_normalized)
SessionLocal = build_session_factory(engine)


def get_db() -> Iterator[Session]:
    with SessionLocal() as db:
        yield db


def init_db(bind: Engine | None = None) -> None:
    Base.metadata.create_all(bind=bind or engine)
