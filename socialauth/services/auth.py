from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any
from urllib.parse import urlencode

import structlog
from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel
from starlette.requests import Request
from starlette.responses import RedirectResponse

from socialauth.core.config import Settings, settings
from socialauth.models import SocialProfile, User
from socialauth.models.base import utcnow
from socialauth.providers.base import (
    AccessToken,
    InvalidResponseError,
    ProviderError,
    SocialIdentity,
    SocialProvider,
)
from socialauth.providers.registry import ProviderRegistry
from socialauth.services.hooks import AuthContext, AuthStatus, SocialAuthHooks
from socialauth.services.profiles import (
    link_profile_to_user,
    profile_to_dict,
    save_profile_if_changed,
    snapshot_profile,
    upsert_profile,
)
from socialauth.services.session import (
    PROVIDER_KEY,
    REDIRECT_QUERY_PARAM,
    MappingSessionStore,
    SessionStore,
    get_redirect_url,
    set_redirect_url,
)
from socialauth.services.users import find_user, primary_key_value, user_to_dict

_logger = structlog.get_logger(__name__)

AUTH_NAMESPACE = "SocialAuth"
AUTH_CONTROLLER = "Auth"
SOCIAL_PROFILE_KEY = "social_profile"
CALLBACK_METHOD = "GET"

# rounds of rollback-and-reread after losing an insert race
_CONFLICT_RETRIES = 2


class AuthAction(str, Enum):
    PASSTHROUGH = "passthrough"
    LOGIN = "login"
    CALLBACK = "callback"


@dataclass(frozen=True)
class RouteParams:
    namespace: str | None = None
    controller: str | None = None
    action: str | None = None
    provider: str | None = None


def classify_request(params: RouteParams) -> AuthAction:
    """Decide whether a routed request belongs to the social login flow."""

    if (
        params.namespace != AUTH_NAMESPACE
        or params.controller != AUTH_CONTROLLER
        or params.action not in (AuthAction.LOGIN.value, AuthAction.CALLBACK.value)
    ):
        return AuthAction.PASSTHROUGH
    return AuthAction(params.action)


@dataclass
class AuthResult:
    status: AuthStatus
    redirect_url: str
    user: Any = None
    profile: SocialProfile | None = None

    @property
    def ok(self) -> bool:
        return self.status is AuthStatus.SUCCESS


def _session_user_id(store: SessionStore, session_key: str) -> Any:
    current = store.get(session_key)
    if current is None:
        return None
    if isinstance(current, Mapping):
        return current.get("id")
    return getattr(current, "id", None)


def _append_query(url: str, **params: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


def _require_method(request: Request, allowed: str) -> None:
    allowed = allowed.upper()
    if request.method.upper() != allowed:
        raise HTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail="Method Not Allowed",
            headers={"Allow": allowed},
        )


class SocialAuthService:
    """Drive the login/callback handshake and reconcile profiles with users."""

    def __init__(
        self,
        *,
        settings: Settings,
        providers: ProviderRegistry | None = None,
        hooks: SocialAuthHooks | None = None,
        user_model: type[SQLModel] = User,
    ) -> None:
        self._settings = settings
        self._providers = providers or ProviderRegistry(settings)
        self._hooks = hooks or SocialAuthHooks()
        self._user_model = user_model

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def providers(self) -> ProviderRegistry:
        return self._providers

    def callback_url(self, request: Request, provider_name: str) -> str:
        base = self._settings.callback_base_url or str(request.base_url)
        prefix = self._settings.route_prefix.rstrip("/")
        return f"{base.rstrip('/')}{prefix}/callback/{provider_name}"

    def login(self, request: Request, provider_name: str) -> RedirectResponse:
        _require_method(request, self._settings.request_method)

        provider = self._providers.get(provider_name)
        store = MappingSessionStore(request.session)
        auth_url = provider.make_auth_url(
            store, redirect_uri=self.callback_url(request, provider_name)
        )
        store.set(PROVIDER_KEY, provider_name)
        set_redirect_url(store, request.query_params.get(REDIRECT_QUERY_PARAM))

        return RedirectResponse(auth_url, status_code=status.HTTP_302_FOUND)

    def callback(
        self, request: Request, session: Session, provider_name: str | None = None
    ) -> RedirectResponse:
        _require_method(request, CALLBACK_METHOD)
        result = self.authenticate(request, session, provider_name)
        return RedirectResponse(result.redirect_url, status_code=status.HTTP_302_FOUND)

    def authenticate(
        self, request: Request, session: Session, provider_name: str | None = None
    ) -> AuthResult:
        store = MappingSessionStore(request.session)
        context = AuthContext(
            request=request,
            store=store,
            provider=provider_name or store.get(PROVIDER_KEY),
            current_user_id=_session_user_id(store, self._settings.session_key),
        )

        try:
            provider_name, access_token, identity = self._acquire_identity(context)
        except ProviderError as exc:
            if self._settings.log_errors:
                self._log_provider_failure(context, exc)
            return self._fail(context, AuthStatus.PROVIDER_FAILURE)

        profile = upsert_profile(
            session,
            provider=provider_name,
            identity=identity,
            access_token=access_token,
        )

        before = snapshot_profile(profile)
        user, failure = self._resolve_user(session, profile, context)
        if failure is not None:
            session.rollback()
            return self._fail(context, failure)
        save_profile_if_changed(session, profile, before)

        return self._succeed(session, context, user, profile)

    def _acquire_identity(
        self, context: AuthContext
    ) -> tuple[str, AccessToken, SocialIdentity]:
        provider_name = context.provider
        if not provider_name:
            raise ProviderError("Unable to determine the provider for this callback")

        provider: SocialProvider = self._providers.get(provider_name)
        access_token = provider.get_access_token(
            context.request.query_params,
            context.store,
            redirect_uri=self.callback_url(context.request, provider_name),
        )
        identity = provider.get_identity(access_token)
        if not identity.id:
            raise InvalidResponseError("Provider returned an identity without an id")
        return provider_name, access_token, identity

    def _resolve_user(
        self,
        session: Session,
        profile: SocialProfile,
        context: AuthContext,
        *,
        retries: int = _CONFLICT_RETRIES,
    ) -> tuple[Any, AuthStatus | None]:
        if profile.user_id is not None:
            user = find_user(
                session,
                self._user_model,
                profile.user_id,
                finder=self._settings.finder,
            )
            if user is None:
                return None, AuthStatus.FINDER_FAILURE
        else:
            try:
                user = self._create_user(session, profile, context)
            except IntegrityError:
                # A concurrent request inserted the same user first.
                if retries <= 0:
                    raise
                session.rollback()
                session.refresh(profile)
                _logger.info(
                    "social_auth.user_conflict",
                    provider=profile.provider,
                    profile_id=profile.id,
                    user_id=profile.user_id,
                )
                return self._resolve_user(
                    session, profile, context, retries=retries - 1
                )
            if not link_profile_to_user(session, profile, primary_key_value(user)):
                # Another request linked this profile first; use its user.
                session.rollback()
                session.refresh(profile)
                _logger.info(
                    "social_profile.link_conflict",
                    provider=profile.provider,
                    profile_id=profile.id,
                    user_id=profile.user_id,
                )
                return self._resolve_user(
                    session, profile, context, retries=retries - 1
                )

        if (
            context.current_user_id is not None
            and context.current_user_id != primary_key_value(user)
        ):
            return None, AuthStatus.IDENTITY_MISMATCH
        return user, None

    def _create_user(
        self, session: Session, profile: SocialProfile, context: AuthContext
    ) -> SQLModel:
        user = self._hooks.create_user(session, profile, context)
        if not isinstance(user, self._user_model) or primary_key_value(user) is None:
            raise RuntimeError('"create_user" hook must return a persisted user.')
        if user not in session:
            user = session.merge(user)
        return user

    def _succeed(
        self,
        session: Session,
        context: AuthContext,
        user: SQLModel,
        profile: SocialProfile,
    ) -> AuthResult:
        session.refresh(user)
        if "last_login_at" in type(user).model_fields:
            setattr(user, "last_login_at", utcnow())
            session.add(user)
            session.commit()
            session.refresh(user)
        session.refresh(profile)
        session.expunge(user)

        password_field = self._settings.password_field
        if hasattr(user, password_field):
            setattr(user, password_field, None)

        identified: Any = user
        replacement = self._hooks.after_identify(identified)
        if replacement is not None:
            identified = replacement
        if not self._settings.user_entity:
            identified = user_to_dict(identified, password_field=password_field)

        payload = jsonable_encoder(identified)
        if replacement is None:
            # a replaced user is stored exactly as the hook returned it
            social_profile = profile_to_dict(profile)
            payload[SOCIAL_PROFILE_KEY] = social_profile
            if isinstance(identified, dict):
                identified[SOCIAL_PROFILE_KEY] = social_profile
        context.store.set(self._settings.session_key, payload)
        context.store.delete(PROVIDER_KEY)

        redirect_url = self._before_redirect(
            context,
            get_redirect_url(context.store, self._settings.login_redirect),
            AuthStatus.SUCCESS,
        )
        _logger.info(
            "social_auth.login_succeeded",
            provider=context.provider,
            profile_id=profile.id,
            user_id=primary_key_value(user),
        )
        return AuthResult(
            status=AuthStatus.SUCCESS,
            redirect_url=redirect_url,
            user=identified,
            profile=profile,
        )

    def _fail(self, context: AuthContext, auth_status: AuthStatus) -> AuthResult:
        context.error = auth_status
        if auth_status is not AuthStatus.PROVIDER_FAILURE:
            _logger.info(
                "social_auth.login_failed",
                provider=context.provider,
                status=auth_status.value,
            )
        url = _append_query(self._settings.login_url, error=auth_status.value)
        return AuthResult(
            status=auth_status,
            redirect_url=self._before_redirect(context, url, auth_status),
        )

    def _before_redirect(
        self, context: AuthContext, url: str, auth_status: AuthStatus
    ) -> str:
        override = self._hooks.before_redirect(url, auth_status, context.request)
        context.redirect_url = override or url
        return context.redirect_url

    def _log_provider_failure(self, context: AuthContext, exc: ProviderError) -> None:
        request = context.request
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"

        details: dict[str, Any] = {
            "error_type": type(exc).__name__,
            "error": str(exc),
            "provider": context.provider,
            "request_url": target,
        }
        referer = request.headers.get("referer")
        if referer:
            details["referer"] = referer
        if isinstance(exc, InvalidResponseError) and exc.response is not None:
            details["provider_response"] = exc.response.text

        _logger.error("social_auth.provider_failure", exc_info=exc, **details)


@lru_cache(maxsize=1)
def get_social_auth_service() -> SocialAuthService:
    return SocialAuthService(settings=settings)


__all__ = [
    "AUTH_CONTROLLER",
    "AUTH_NAMESPACE",
    "CALLBACK_METHOD",
    "SOCIAL_PROFILE_KEY",
    "AuthAction",
    "AuthResult",
    "RouteParams",
    "SocialAuthService",
    "classify_request",
    "get_social_auth_service",
]
