from __future__ import annotations

from collections.abc import Callable
from typing import Any

from sqlalchemy import inspect
from sqlmodel import Session, SQLModel, select
from sqlmodel.sql.expression import SelectOfScalar

from socialauth.models import SocialProfile, User

UserFinder = Callable[[SelectOfScalar[Any], type[SQLModel]], SelectOfScalar[Any]]


def _find_all(
    statement: SelectOfScalar[Any], model: type[SQLModel]
) -> SelectOfScalar[Any]:
    return statement


def _find_active(
    statement: SelectOfScalar[Any], model: type[SQLModel]
) -> SelectOfScalar[Any]:
    is_active = getattr(model, "is_active")
    return statement.where(is_active.is_(True))


_FINDERS: dict[str, UserFinder] = {
    "all": _find_all,
    "active": _find_active,
}


def register_finder(name: str, finder: UserFinder) -> None:
    """Make ``finder`` selectable through the ``finder`` setting."""

    _FINDERS[name] = finder


def get_finder(name: str) -> UserFinder:
    try:
        return _FINDERS[name]
    except KeyError as exc:
        msg = f"Unknown user finder {name!r}"
        raise ValueError(msg) from exc


def primary_key_name(model: type[SQLModel]) -> str:
    return str(inspect(model).primary_key[0].key)


def primary_key_value(user: SQLModel) -> Any:
    return getattr(user, primary_key_name(type(user)))


def find_user(
    session: Session,
    model: type[SQLModel],
    user_id: Any,
    *,
    finder: str = "all",
) -> SQLModel | None:
    """Load a user by primary key through the named finder.

    ``None`` means the finder filtered the record out (or it no longer
    exists).
    """

    column = getattr(model, primary_key_name(model))
    statement = select(model).where(column == user_id)
    statement = get_finder(finder)(statement, model)
    return session.exec(statement).first()


def create_user_from_profile(
    session: Session,
    profile: SocialProfile,
    *,
    current_user_id: int | None = None,
) -> User:
    """Return the user a freshly seen social profile should belong to.

    An authenticated session claims the profile for its own user. Otherwise an
    account with the same email is reused when the provider vouches for the
    address, and a new account is created as a last resort. The new user is
    flushed, not committed.
    """

    if current_user_id is not None:
        current = session.get(User, current_user_id)
        if current is not None:
            return current

    email = profile.email
    if email:
        existing = session.exec(select(User).where(User.email == email)).first()
        if existing is not None:
            if profile.email_verified:
                return existing
            email = None

    full_name = profile.full_name
    if not full_name:
        parts = [part for part in (profile.first_name, profile.last_name) if part]
        full_name = " ".join(parts) or None

    user = User(email=email, full_name=full_name)
    session.add(user)
    session.flush()
    return user


def user_to_dict(user: Any, *, password_field: str) -> Any:
    """Plain, JSON-ready representation of ``user`` without its password."""

    if isinstance(user, SQLModel):
        return user.model_dump(mode="json", exclude={password_field})
    if isinstance(user, dict):
        return {key: value for key, value in user.items() if key != password_field}
    return user


__all__ = [
    "UserFinder",
    "create_user_from_profile",
    "find_user",
    "get_finder",
    "primary_key_name",
    "primary_key_value",
    "register_finder",
    "user_to_dict",
]
