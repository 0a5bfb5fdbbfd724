from __future__ import annotations

from socialauth.core.config import Settings
from socialauth.providers.base import SocialProvider, UnknownProviderError
from socialauth.providers.oauth2 import HttpClientFactory, OAuth2Provider


class ProviderRegistry:
    """Resolve provider names to ``SocialProvider`` instances.

    Providers declared in ``service_config`` are built lazily as
    ``OAuth2Provider``; anything else must be registered explicitly.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        http_client_factory: HttpClientFactory | None = None,
    ) -> None:
        self._settings = settings
        self._http_client_factory = http_client_factory
        self._providers: dict[str, SocialProvider] = {}

    def register(self, name: str, provider: SocialProvider) -> None:
        self._providers[name] = provider

    def names(self) -> list[str]:
        return sorted({*self._providers, *self._settings.service_config})

    def get(self, name: str) -> SocialProvider:
        provider = self._providers.get(name)
        if provider is not None:
            return provider

        config = self._settings.service_config.get(name)
        if config is None:
            msg = f"Social auth provider {name!r} is not configured"
            raise UnknownProviderError(msg)

        provider = OAuth2Provider(
            name,
            config,
            timeout=self._settings.provider_timeout,
            http_client_factory=self._http_client_factory,
        )
        self._providers[name] = provider
        return provider


__all__ = ["ProviderRegistry"]
