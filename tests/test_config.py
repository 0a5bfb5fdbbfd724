from __future__ import annotations

import json
from collections.abc import Generator

import pytest
from pydantic import ValidationError

from socialauth.core.config import ProviderConfig, Settings, get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    try:
        yield
    finally:
        get_settings.cache_clear()


def test_settings_defaults() -> None:
    defaults = Settings()
    assert defaults.request_method == "POST"
    assert defaults.login_url == "/users/login"
    assert defaults.login_redirect == "/"
    assert defaults.user_entity is False
    assert defaults.finder == "all"
    assert defaults.password_field == "password"
    assert defaults.session_key == "Auth.User"
    assert defaults.log_errors is True
    assert defaults.route_prefix == "/social-auth"
    assert defaults.service_config == {}


def test_settings_read_prefixed_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOCIAL_AUTH_REQUEST_METHOD", "GET")
    monkeypatch.setenv("SOCIAL_AUTH_LOGIN_URL", "/account/sign-in")
    monkeypatch.setenv("SOCIAL_AUTH_USER_ENTITY", "true")
    monkeypatch.setenv("SOCIAL_AUTH_LOG_ERRORS", "false")
    monkeypatch.setenv(
        "SOCIAL_AUTH_SERVICE_CONFIG",
        json.dumps(
            {
                "google": {
                    "client_id": "google-app",
                    "client_secret": "google-secret",
                    "authorization_endpoint": "https://accounts.example.com/auth",
                    "token_endpoint": "https://accounts.example.com/token",
                    "userinfo_endpoint": "https://accounts.example.com/userinfo",
                }
            }
        ),
    )

    settings = get_settings()

    assert settings.request_method == "GET"
    assert settings.login_url == "/account/sign-in"
    assert settings.user_entity is True
    assert settings.log_errors is False
    google = settings.service_config["google"]
    assert google.client_id == "google-app"
    assert google.scope == ["openid", "email", "profile"]
    assert google.identity_fields["id"] == "sub"
    assert google.identity_fields["pictureURL"] == "picture"


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()


def test_provider_config_requires_endpoints() -> None:
    with pytest.raises(ValidationError):
        ProviderConfig(client_id="app")  # type: ignore[call-arg]


def test_provider_timeout_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(provider_timeout=0)
