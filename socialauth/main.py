from __future__ import annotations

from collections.abc import Callable

from fastapi import FastAPI
from sqlmodel import Session
from starlette.middleware.sessions import SessionMiddleware

from .core.config import Settings
from .core.config import settings as default_settings
from .core.logging import configure_logging
from .middleware import SocialAuthMiddleware
from .services.auth import SocialAuthService, get_social_auth_service


def create_application(
    *,
    settings: Settings | None = None,
    service: SocialAuthService | None = None,
    session_factory: Callable[[], Session] | None = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings)

    if service is None:
        if settings is default_settings:
            service = get_social_auth_service()
        else:
            service = SocialAuthService(settings=settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Starlette runs the last added middleware first; sessions must wrap auth.
    app.add_middleware(
        SocialAuthMiddleware,
        service=service,
        session_factory=session_factory,
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret_key,
        same_site="lax",
        https_only=settings.session_https_only,
    )
    return app


app = create_application()
