from socialauth.providers.base import (
    AccessToken,
    InvalidResponseError,
    InvalidStateError,
    ProviderError,
    SocialIdentity,
    SocialProvider,
    UnknownProviderError,
)
from socialauth.providers.oauth2 import OAuth2Provider
from socialauth.providers.registry import ProviderRegistry

__all__ = [
    "AccessToken",
    "InvalidResponseError",
    "InvalidStateError",
    "OAuth2Provider",
    "ProviderError",
    "ProviderRegistry",
    "SocialIdentity",
    "SocialProvider",
    "UnknownProviderError",
]
