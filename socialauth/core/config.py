from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_identity_fields() -> dict[str, str]:
    # identity attribute -> OpenID Connect userinfo claim
    return {
        "id": "sub",
        "username": "preferred_username",
        "email": "email",
        "emailVerified": "email_verified",
        "firstname": "given_name",
        "lastname": "family_name",
        "fullname": "name",
        "birthday": "birthdate",
        "sex": "gender",
        "pictureURL": "picture",
        "locale": "locale",
    }


class ProviderConfig(BaseModel):
    """Credentials and endpoints for a single identity provider."""

    client_id: str
    client_secret: str | None = None
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str
    scope: list[str] = Field(default_factory=lambda: ["openid", "email", "profile"])
    authorization_params: dict[str, str] = Field(default_factory=dict)
    identity_fields: dict[str, str] = Field(default_factory=_default_identity_fields)


class Settings(BaseSettings):
    """Social login configuration pulled from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SOCIAL_AUTH_", env_file=(".env", ".env.local"), extra="ignore"
    )

    app_name: str = Field(default="SocialAuth")
    environment: Literal["local", "staging", "production", "test"] = Field(
        default="local"
    )
    debug: bool = Field(default=False)

    database_url: str = Field(default="sqlite:///./socialauth.db")
    session_secret_key: str = Field(default="change-me", min_length=8)
    session_https_only: bool = Field(default=False)

    route_prefix: str = Field(default="/social-auth")
    request_method: str = Field(default="POST")
    login_url: str = Field(default="/users/login")
    login_redirect: str = Field(default="/")
    user_entity: bool = Field(default=False)
    finder: str = Field(default="all")
    password_field: str = Field(default="password")
    session_key: str = Field(default="Auth.User")
    log_errors: bool = Field(default=True)

    service_config: dict[str, ProviderConfig] = Field(default_factory=dict)
    provider_timeout: float = Field(default=10.0, gt=0.0)
    callback_base_url: str | None = Field(default=None)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
