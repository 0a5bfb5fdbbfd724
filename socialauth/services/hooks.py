from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlmodel import Session
from starlette.requests import Request

from socialauth.models import SocialProfile
from socialauth.services.session import SessionStore
from socialauth.services.users import create_user_from_profile

if TYPE_CHECKING:
    from sqlmodel import SQLModel


class AuthStatus(str, Enum):
    SUCCESS = "success"
    PROVIDER_FAILURE = "provider_failure"
    FINDER_FAILURE = "finder_failure"
    IDENTITY_MISMATCH = "identity_mismatch"


@dataclass
class AuthContext:
    """Request-scoped state of one handshake."""

    request: Request
    store: SessionStore
    provider: str | None = None
    current_user_id: Any = None
    error: AuthStatus | None = None
    redirect_url: str | None = None


class SocialAuthHooks:
    """Extension points of the login flow.

    Subclass and override what the host application needs; every method has
    a working default.
    """

    def create_user(
        self, session: Session, profile: SocialProfile, context: AuthContext
    ) -> SQLModel:
        """Return a persisted user for a profile that has none yet."""

        return create_user_from_profile(
            session, profile, current_user_id=context.current_user_id
        )

    def after_identify(self, user: Any) -> Any | None:
        """Return a replacement for ``user``, or ``None`` to keep it."""

        return None

    def before_redirect(
        self, url: str, status: AuthStatus, request: Request
    ) -> str | None:
        """Return a replacement redirect target, or ``None`` to keep ``url``."""

        return None


__all__ = ["AuthContext", "AuthStatus", "SocialAuthHooks"]
