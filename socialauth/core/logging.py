from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from typing import Any
from urllib.parse import parse_qsl, urlencode

import structlog
from structlog.typing import EventDict, Processor

from socialauth.core.config import Settings
from socialauth.core.config import settings as default_settings

REDACTED = "***"

_SECRET_KEYS = frozenset(
    {"access_token", "refresh_token", "client_secret", "password"}
)
# OAuth callback parameters that grant access on their own
_SECRET_QUERY_PARAMS = frozenset({"code", "state", "access_token", "id_token"})


def _redact_query(url: str) -> str:
    path, _, query = url.partition("?")
    pairs = [
        (key, REDACTED if key in _SECRET_QUERY_PARAMS else value)
        for key, value in parse_qsl(query, keep_blank_values=True)
    ]
    return f"{path}?{urlencode(pairs, safe='*')}"


def redact_secrets(
    logger: Any, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask credentials before an event reaches a renderer."""

    for key in _SECRET_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    url = event_dict.get("request_url")
    if isinstance(url, str) and "?" in url:
        event_dict["request_url"] = _redact_query(url)
    return event_dict


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog + standard logging; JSON output outside local runs."""

    settings = settings or default_settings
    timestamper: Processor = structlog.processors.TimeStamper(fmt="iso")

    shared_processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        timestamper,
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor
    if settings.environment == "local":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    processors: Sequence[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        *shared_processors,
        renderer,
    ]

    level = logging.DEBUG if settings.debug else logging.INFO
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)


__all__ = ["REDACTED", "configure_logging", "redact_secrets"]
