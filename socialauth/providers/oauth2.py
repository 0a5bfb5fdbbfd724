from __future__ import annotations

import secrets
import time
from collections.abc import Callable, Mapping
from typing import Any, cast
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from socialauth.core.config import ProviderConfig
from socialauth.providers.base import (
    AccessToken,
    InvalidResponseError,
    InvalidStateError,
    ProviderError,
    SocialIdentity,
)
from socialauth.services.session import SessionStore

HttpClientFactory = Callable[[], httpx.Client]

_TOKEN_FIELDS = frozenset(
    {"access_token", "token_type", "expires_in", "refresh_token", "scope"}
)


def _state_key(provider_name: str) -> str:
    return f"SocialAuth.{provider_name}.state"


def _scope_string(scope: Any) -> str | None:
    # RFC 6749 scopes are space-delimited; some providers send a list
    if not scope:
        return None
    if isinstance(scope, (list, tuple)):
        return " ".join(str(item) for item in scope)
    return str(scope)


class OAuth2Provider:
    """Authorization-code provider speaking plain OAuth2 / OpenID Connect."""

    def __init__(
        self,
        name: str,
        config: ProviderConfig,
        *,
        timeout: float = 10.0,
        http_client_factory: HttpClientFactory | None = None,
    ) -> None:
        self.name = name
        self._config = config
        self._http_client_factory = http_client_factory or (
            lambda: httpx.Client(timeout=timeout)
        )

    def make_auth_url(self, store: SessionStore, *, redirect_uri: str) -> str:
        state = secrets.token_urlsafe(24)
        store.set(_state_key(self.name), state)
        params = {
            **self._config.authorization_params,
            "client_id": self._config.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": " ".join(self._config.scope),
            "state": state,
        }
        return f"{self._config.authorization_endpoint}?{urlencode(params)}"

    def get_access_token(
        self,
        params: Mapping[str, str],
        store: SessionStore,
        *,
        redirect_uri: str,
    ) -> AccessToken:
        expected_state = store.get(_state_key(self.name))
        store.delete(_state_key(self.name))

        if "error" in params:
            detail = params.get("error_description") or params["error"]
            raise ProviderError(f"Provider denied authorization: {detail}")
        if not expected_state or params.get("state") != expected_state:
            raise InvalidStateError("Callback state does not match the login request")
        code = params.get("code")
        if not code:
            raise ProviderError("Callback is missing the authorization code")

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self._config.client_id,
        }
        if self._config.client_secret:
            data["client_secret"] = self._config.client_secret

        response = self._send("POST", self._config.token_endpoint, data=data)
        payload = self._json(response)
        token = payload.get("access_token")
        if not token:
            raise InvalidResponseError(
                "Provider did not return an access token", response=response
            )

        expires_at = None
        expires_in = payload.get("expires_in")
        if expires_in:
            try:
                expires_at = int(time.time()) + int(expires_in)
            except (TypeError, ValueError) as exc:
                raise InvalidResponseError(
                    f"Provider returned an invalid expires_in: {expires_in!r}",
                    response=response,
                ) from exc

        refresh_token = payload.get("refresh_token")
        return AccessToken(
            token=str(token),
            token_type=str(payload.get("token_type") or "bearer"),
            expires_at=expires_at,
            refresh_token=str(refresh_token) if refresh_token else None,
            scope=_scope_string(payload.get("scope")),
            extra={
                key: value
                for key, value in payload.items()
                if key not in _TOKEN_FIELDS
            },
        )

    def get_identity(self, access_token: AccessToken) -> SocialIdentity:
        headers = {"Authorization": f"Bearer {access_token.token}"}
        response = self._send("GET", self._config.userinfo_endpoint, headers=headers)
        payload = self._json(response)
        mapped = {
            attribute: payload[claim]
            for attribute, claim in self._config.identity_fields.items()
            if claim in payload
        }
        if not mapped.get("id") and "id" in payload:
            mapped["id"] = payload["id"]
        try:
            return SocialIdentity.model_validate(mapped)
        except ValidationError as exc:
            raise InvalidResponseError(
                f"Unexpected identity payload: {exc.error_count()} invalid field(s)",
                response=response,
            ) from exc

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            with self._http_client_factory() as client:
                response = client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise InvalidResponseError(
                f"Provider responded with HTTP {exc.response.status_code}",
                response=exc.response,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Failed to reach provider: {exc}") from exc
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise InvalidResponseError(
                "Provider returned a non-JSON body", response=response
            ) from exc
        if not isinstance(data, dict):
            raise InvalidResponseError(
                "Provider returned an unexpected JSON document", response=response
            )
        return cast(dict[str, Any], data)


__all__ = ["HttpClientFactory", "OAuth2Provider"]
