from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import socialauth.models as models
from socialauth.core.config import Settings
from socialauth.main import create_application
from socialauth.providers import AccessToken, ProviderRegistry, SocialIdentity
from socialauth.services.auth import SocialAuthService
from socialauth.services.hooks import SocialAuthHooks
from socialauth.services.session import SessionStore

AUTH_URL = "https://facebook.example.com/dialog/oauth?client_id=app"


class FakeProvider:
    """In-memory stand-in for a provider gateway."""

    name = "facebook"

    def __init__(self) -> None:
        self.identity = SocialIdentity(
            id="fbid",
            email="fb.user@example.com",
            email_verified=True,
            firstname="Fiona",
            lastname="Booker",
            fullname="Fiona Booker",
            sex="female",
        )
        self.access_token = AccessToken(
            token="token-1",
            expires_at=1_900_000_000,
            extra={"user_id": "fbid", "granted_scopes": ["email", "public_profile"]},
        )
        self.error: Exception | None = None
        self.redirect_uris: list[str] = []
        self.exchanges = 0

    def make_auth_url(self, store: SessionStore, *, redirect_uri: str) -> str:
        self.redirect_uris.append(redirect_uri)
        return AUTH_URL

    def get_access_token(
        self,
        params: Mapping[str, str],
        store: SessionStore,
        *,
        redirect_uri: str,
    ) -> AccessToken:
        self.redirect_uris.append(redirect_uri)
        self.exchanges += 1
        if self.error is not None:
            raise self.error
        return self.access_token

    def get_identity(self, access_token: AccessToken) -> SocialIdentity:
        assert access_token == self.access_token
        return self.identity


class RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def _record(self, level: str, event: str, **kwargs: Any) -> None:
        self.events.append((level, event, kwargs))

    def info(self, event: str, **kwargs: Any) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._record("error", event, **kwargs)

    def named(self, event: str) -> list[tuple[str, str, dict[str, Any]]]:
        return [entry for entry in self.events if entry[1] == event]


@pytest.fixture(name="engine")
def engine_fixture() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine: Engine) -> Iterator[Session]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    return Settings(
        environment="test",
        session_secret_key="test-session-secret",
        login_url="/users/login",
        login_redirect="/",
    )


@pytest.fixture(name="provider")
def provider_fixture() -> FakeProvider:
    return FakeProvider()


@pytest.fixture(name="registry")
def registry_fixture(settings: Settings, provider: FakeProvider) -> ProviderRegistry:
    registry = ProviderRegistry(settings)
    registry.register("facebook", provider)
    return registry


@pytest.fixture(name="hooks")
def hooks_fixture() -> SocialAuthHooks:
    return SocialAuthHooks()


@pytest.fixture(name="make_client")
def make_client_fixture(
    engine: Engine, registry: ProviderRegistry
) -> Iterator[Callable[..., TestClient]]:
    clients: list[TestClient] = []

    def factory(
        settings: Settings, hooks: SocialAuthHooks | None = None
    ) -> TestClient:
        service = SocialAuthService(
            settings=settings, providers=registry, hooks=hooks
        )
        app = create_application(
            settings=settings,
            service=service,
            session_factory=lambda: Session(engine),
        )
        _add_session_routes(app)
        client = TestClient(app, follow_redirects=False)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()


@pytest.fixture(name="client")
def client_fixture(
    make_client: Callable[..., TestClient],
    settings: Settings,
    hooks: SocialAuthHooks,
) -> TestClient:
    return make_client(settings, hooks)


@pytest.fixture
def create_user(engine: Engine) -> Callable[..., models.User]:
    def factory(
        *,
        email: str | None = None,
        full_name: str | None = None,
        password: str | None = "hashed-secret",
        is_active: bool = True,
    ) -> models.User:
        with Session(engine) as session:
            user = models.User(
                email=email,
                full_name=full_name,
                password=password,
                is_active=is_active,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user

    return factory


@pytest.fixture
def create_profile(engine: Engine) -> Callable[..., models.SocialProfile]:
    def factory(
        *,
        provider: str = "facebook",
        identifier: str = "fbid",
        user_id: int | None = None,
        **fields: Any,
    ) -> models.SocialProfile:
        with Session(engine) as session:
            profile = models.SocialProfile(
                provider=provider,
                identifier=identifier,
                user_id=user_id,
                access_token=AccessToken(token="stale-token"),
                **fields,
            )
            session.add(profile)
            session.commit()
            session.refresh(profile)
            session.expunge(profile)
            return profile

    return factory


def _add_session_routes(app: FastAPI) -> None:
    @app.post("/_test/session")
    async def write_session(request: Request) -> dict[str, Any]:
        request.session.update(await request.json())
        return dict(request.session)

    @app.get("/_test/session")
    async def read_session(request: Request) -> dict[str, Any]:
        return dict(request.session)
