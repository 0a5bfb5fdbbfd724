"""SQLModel table definitions for social profiles and the default user model."""

from __future__ import annotations

from sqlmodel import SQLModel

from socialauth.models.social_profile import SocialProfile
from socialauth.models.user import User

__all__ = [
    "SQLModel",
    "SocialProfile",
    "User",
]
