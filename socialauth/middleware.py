"""ASGI glue between the host application and ``SocialAuthService``.

Routes handled (relative to ``route_prefix``)::

    GET|POST /login/{provider}
    GET      /callback/{provider}
    GET      /callback

Everything else is handed to the wrapped application untouched. Starlette's
``SessionMiddleware`` must wrap this middleware.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Receive, Scope, Send

from socialauth.core.database import open_session
from socialauth.services.auth import (
    AUTH_CONTROLLER,
    AUTH_NAMESPACE,
    AuthAction,
    RouteParams,
    SocialAuthService,
    classify_request,
)


def parse_route(path: str, prefix: str) -> RouteParams:
    prefix = "/" + prefix.strip("/")
    if path != prefix and not path.startswith(prefix + "/"):
        return RouteParams()

    segments = [segment for segment in path[len(prefix) :].split("/") if segment]
    if not segments or len(segments) > 2:
        return RouteParams(namespace=AUTH_NAMESPACE, controller=AUTH_CONTROLLER)

    action = segments[0]
    provider = segments[1] if len(segments) == 2 else None
    if action == AuthAction.LOGIN.value and provider is None:
        # login always names its provider
        action = ""
    return RouteParams(
        namespace=AUTH_NAMESPACE,
        controller=AUTH_CONTROLLER,
        action=action or None,
        provider=provider,
    )


class SocialAuthMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        *,
        service: SocialAuthService,
        session_factory: Callable[[], Session] | None = None,
    ) -> None:
        self.app = app
        self._service = service
        self._session_factory = session_factory or open_session

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        params = parse_route(scope["path"], self._service.settings.route_prefix)
        action = classify_request(params)
        if action is AuthAction.PASSTHROUGH:
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        try:
            if action is AuthAction.LOGIN:
                response: Response = await run_in_threadpool(
                    self._service.login, request, params.provider or ""
                )
            else:
                response = await run_in_threadpool(
                    self._handle_callback, request, params.provider
                )
        except HTTPException as exc:
            response = JSONResponse(
                {"detail": exc.detail},
                status_code=exc.status_code,
                headers=exc.headers,
            )
        await response(scope, receive, send)

    def _handle_callback(self, request: Request, provider: str | None) -> Response:
        with self._session_factory() as session:
            return self._service.callback(request, session, provider)


__all__ = ["SocialAuthMiddleware", "parse_route"]
