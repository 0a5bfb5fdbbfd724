from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from socialauth.services.session import SessionStore


class ProviderError(Exception):
    """Raised when the handshake with an identity provider fails."""


class InvalidResponseError(ProviderError):
    """The provider answered, but not with something usable."""

    def __init__(self, message: str, response: httpx.Response | None = None) -> None:
        super().__init__(message)
        self.response = response


class InvalidStateError(ProviderError):
    """The callback ``state`` does not match the one issued at login."""


class UnknownProviderError(LookupError):
    """No provider with the requested name is configured."""


@dataclass(frozen=True)
class AccessToken:
    token: str
    token_type: str = "bearer"
    expires_at: int | None = None
    refresh_token: str | None = None
    scope: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)


class SocialIdentity(BaseModel):
    """Normalized identity returned by a provider.

    Attribute aliases follow the vocabulary providers are mapped into
    (``emailVerified``, ``pictureURL``); ``IDENTITY_FIELD_MAP`` translates them
    into profile columns.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    username: str | None = None
    email: str | None = None
    email_verified: bool = Field(default=False, alias="emailVerified")
    firstname: str | None = None
    lastname: str | None = None
    fullname: str | None = None
    birthday: str | None = None
    sex: str | None = None
    picture_url: str | None = Field(default=None, alias="pictureURL")
    locale: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)


class SocialProvider(Protocol):
    name: str

    def make_auth_url(self, store: SessionStore, *, redirect_uri: str) -> str:
        """Return the provider URL the user agent is sent to for consent."""

    def get_access_token(
        self,
        params: Mapping[str, str],
        store: SessionStore,
        *,
        redirect_uri: str,
    ) -> AccessToken:
        """Exchange callback query parameters for an access token."""

    def get_identity(self, access_token: AccessToken) -> SocialIdentity:
        """Fetch the identity the access token belongs to."""


__all__ = [
    "AccessToken",
    "InvalidResponseError",
    "InvalidStateError",
    "ProviderError",
    "SocialIdentity",
    "SocialProvider",
    "UnknownProviderError",
]
