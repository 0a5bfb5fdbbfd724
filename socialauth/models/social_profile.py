from __future__ import annotations

from typing import Any

from sqlalchemy import Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from socialauth.models.base import IdentifierMixin, TimestampMixin
from socialauth.models.types import SerializedType


class SocialProfile(IdentifierMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "social_profiles"
    __table_args__ = (
        UniqueConstraint(
            "provider",
            "identifier",
            name="uq_social_profiles_provider_identifier",
        ),
    )

    user_id: int | None = Field(
        default=None, foreign_key="users.id", nullable=True, index=True
    )
    provider: str = Field(nullable=False, max_length=255)
    identifier: str = Field(nullable=False, max_length=255)
    access_token: Any = Field(
        default=None, sa_column=Column(SerializedType(), nullable=False)
    )
    username: str | None = Field(default=None, max_length=255)
    first_name: str | None = Field(default=None, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    full_name: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    email_verified: bool = Field(default=False, nullable=False)
    birth_date: str | None = Field(default=None, max_length=255)
    gender: str | None = Field(default=None, max_length=255)
    picture_url: str | None = Field(default=None, max_length=255)
    locale: str | None = Field(default=None, max_length=32)
