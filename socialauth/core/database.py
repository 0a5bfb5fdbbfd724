from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlmodel import Session, create_engine

from socialauth.core.config import settings


def _connect_args(url: str) -> dict[str, Any]:
    # Callback handling runs in the threadpool, away from the creating thread.
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    connect_args=_connect_args(settings.database_url),
)


def open_session() -> Session:
    return Session(engine)


def get_session() -> Generator[Session, None, None]:
    with open_session() as session:
        yield session
