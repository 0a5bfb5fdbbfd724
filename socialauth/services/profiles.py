from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import Session, select

from socialauth.models import SocialProfile
from socialauth.models.base import utcnow
from socialauth.providers.base import AccessToken, SocialIdentity

_logger = structlog.get_logger(__name__)

# identity attribute -> profile column; unlisted attributes keep their name
IDENTITY_FIELD_MAP: Mapping[str, str] = MappingProxyType(
    {
        "id": "identifier",
        "firstname": "first_name",
        "lastname": "last_name",
        "fullname": "full_name",
        "birthday": "birth_date",
        "emailVerified": "email_verified",
        "sex": "gender",
        "pictureURL": "picture_url",
    }
)

_UNTRACKED_FIELDS = frozenset({"id", "created_at", "updated_at"})


class ProfileStorageError(RuntimeError):
    """A changed social profile could not be written."""


def find_profile(
    session: Session, provider: str, identifier: str
) -> SocialProfile | None:
    return session.exec(
        select(SocialProfile)
        .where(SocialProfile.provider == provider)
        .where(SocialProfile.identifier == identifier)
    ).first()


def identity_to_profile_data(identity: SocialIdentity) -> dict[str, Any]:
    """Rename identity attributes to their profile column names."""

    data: dict[str, Any] = {}
    for key, value in identity.model_dump(by_alias=True).items():
        column = IDENTITY_FIELD_MAP.get(key, key)
        if column not in SocialProfile.model_fields:
            msg = f"Identity field {key!r} has no matching profile column"
            raise ValueError(msg)
        data[column] = value
    return data


def apply_identity(
    profile: SocialProfile, identity: SocialIdentity, access_token: AccessToken
) -> None:
    for column, value in identity_to_profile_data(identity).items():
        setattr(profile, column, value)
    profile.access_token = access_token


def snapshot_profile(profile: SocialProfile) -> dict[str, Any]:
    """Column values used to decide whether a profile needs writing."""

    return {
        name: getattr(profile, name)
        for name in SocialProfile.model_fields
        if name not in _UNTRACKED_FIELDS
    }


def profile_to_dict(profile: SocialProfile) -> dict[str, Any]:
    """JSON-ready profile data; the access token never leaves the store."""

    return profile.model_dump(mode="json", exclude={"access_token"})


def save_profile_if_changed(
    session: Session, profile: SocialProfile, before: Mapping[str, Any]
) -> bool:
    if snapshot_profile(profile) == dict(before):
        return False

    profile.touch()
    session.add(profile)
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise ProfileStorageError("Unable to save social profile.") from exc
    session.refresh(profile)
    return True


def upsert_profile(
    session: Session,
    *,
    provider: str,
    identity: SocialIdentity,
    access_token: AccessToken,
) -> SocialProfile:
    """Insert or refresh the profile for ``(provider, identity.id)``.

    A concurrent first login for the same pair surfaces as an
    ``IntegrityError`` on insert; the row written by the other request is
    then loaded and refreshed instead.
    """

    profile = find_profile(session, provider, identity.id)
    if profile is None:
        profile = SocialProfile(provider=provider, identifier=identity.id)
        apply_identity(profile, identity, access_token)
        session.add(profile)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            _logger.info(
                "social_profile.insert_conflict",
                provider=provider,
                identifier=identity.id,
            )
            profile = find_profile(session, provider, identity.id)
            if profile is None:
                raise ProfileStorageError("Unable to save social profile.") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise ProfileStorageError("Unable to save social profile.") from exc
        else:
            session.refresh(profile)
            _logger.info(
                "social_profile.created",
                provider=provider,
                identifier=identity.id,
                profile_id=profile.id,
            )
            return profile

    before = snapshot_profile(profile)
    apply_identity(profile, identity, access_token)
    save_profile_if_changed(session, profile, before)
    return profile


def link_profile_to_user(
    session: Session, profile: SocialProfile, user_id: int
) -> bool:
    """Attach ``user_id`` to a profile that has no user yet.

    The update only matches while ``user_id`` is still ``NULL``, so when two
    requests race to link the same profile exactly one of them wins. Returns
    ``False`` for the loser. The change is left uncommitted.
    """

    table = SocialProfile.__table__  # type: ignore[attr-defined]
    statement = (
        update(table)
        .where(table.c.id == profile.id)
        .where(table.c.user_id.is_(None))
        .values(user_id=user_id, updated_at=utcnow())
    )
    result = session.connection().execute(statement)
    if result.rowcount != 1:
        return False
    set_committed_value(profile, "user_id", user_id)
    return True


__all__ = [
    "IDENTITY_FIELD_MAP",
    "ProfileStorageError",
    "apply_identity",
    "find_profile",
    "identity_to_profile_data",
    "link_profile_to_user",
    "profile_to_dict",
    "save_profile_if_changed",
    "snapshot_profile",
    "upsert_profile",
]
