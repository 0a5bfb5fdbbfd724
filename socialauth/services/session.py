from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any, Protocol

REDIRECT_QUERY_PARAM = "redirect"
REDIRECT_URL_KEY = "SocialAuth.redirectUrl"
PROVIDER_KEY = "SocialAuth.provider"


class SessionStore(Protocol):
    """Key-value view of the per-request session."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MappingSessionStore:
    """``SessionStore`` over a mutable mapping such as ``request.session``."""

    def __init__(self, data: MutableMapping[str, Any]) -> None:
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


def is_safe_redirect(url: object) -> bool:
    """Accept only same-origin absolute paths."""

    if not isinstance(url, str) or not url.startswith("/"):
        return False
    # "/\host" is normalised to "//host" by browsers.
    return not url.startswith(("//", "/\\"))


def set_redirect_url(store: SessionStore, url: str | None) -> None:
    """Remember where to send the user once the callback succeeds.

    Any previously stored target is discarded first; unsafe values are
    dropped silently so the configured default applies.
    """

    store.delete(REDIRECT_URL_KEY)
    if not url or not is_safe_redirect(url):
        return
    store.set(REDIRECT_URL_KEY, url)


def get_redirect_url(store: SessionStore, default: str) -> str:
    """Pop the stored redirect target, falling back to ``default``."""

    url = store.get(REDIRECT_URL_KEY)
    if url:
        store.delete(REDIRECT_URL_KEY)
        return str(url)
    return default


__all__ = [
    "MappingSessionStore",
    "PROVIDER_KEY",
    "REDIRECT_QUERY_PARAM",
    "REDIRECT_URL_KEY",
    "SessionStore",
    "get_redirect_url",
    "is_safe_redirect",
    "set_redirect_url",
]
