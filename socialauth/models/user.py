from datetime import datetime

from sqlmodel import Field, SQLModel

from socialauth.models.base import IdentifierMixin, TimestampMixin


class User(IdentifierMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str | None = Field(default=None, index=True, unique=True, max_length=255)
    full_name: str | None = Field(default=None, max_length=255)
    password: str | None = Field(default=None, max_length=255)
    is_active: bool = Field(default=True)
    last_login_at: datetime | None = Field(default=None)
