from __future__ import annotations

import pytest
from sqlmodel import SQLModel, create_engine

from socialauth.core import database


def test_get_session_uses_configured_engine(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(database, "engine", engine)

    session_gen = database.get_session()
    session = next(session_gen)
    assert session.bind is engine

    with pytest.raises(StopIteration):
        next(session_gen)

    session.close()
    engine.dispose()


def test_open_session_binds_engine(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    monkeypatch.setattr(database, "engine", engine)

    with database.open_session() as session:
        assert session.bind is engine

    engine.dispose()


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("sqlite:///./socialauth.db", {"check_same_thread": False}),
        ("postgresql+psycopg://app@db/socialauth", {}),
    ],
)
def test_connect_args_only_relax_sqlite_threading(
    url: str, expected: dict[str, bool]
) -> None:
    assert database._connect_args(url) == expected
