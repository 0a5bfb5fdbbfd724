from __future__ import annotations

import pickle
from typing import Any

from sqlalchemy.engine import Dialect
from sqlalchemy.types import LargeBinary, TypeDecorator


class SerializedType(TypeDecorator[Any]):
    """Store an arbitrary Python value as a pickled blob.

    Provider access tokens are opaque structures whose shape depends on the
    provider, so the column keeps them whole and hands back an equal object
    on load. ``bytes`` are assumed to be serialized already and are written
    as-is; ``None`` maps to ``NULL``.
    """

    impl = LargeBinary
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> bytes | None:
        if value is None or isinstance(value, bytes):
            return value
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)

    def process_result_value(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        if isinstance(value, memoryview):
            value = value.tobytes()
        return pickle.loads(value)
