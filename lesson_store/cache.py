"""Typed, versioned access to the local lesson cache."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, TypeVar

from pydantic import TypeAdapter, ValidationError

from .storage import CacheStore

LOGGER = logging.getLogger("lessonsync.cache")

ENVELOPE_VERSION = 1

LIBRARY_ACTIVITIES_KEY = "library-activities"
LESSON_PLANS_KEY = "user-created-lesson-plans"

T = TypeVar("T")


def lesson_data_key(class_name: str) -> str:
    return f"lesson-data-{class_name}"


def units_key(class_name: str) -> str:
    return f"units-{class_name}"


def half_terms_key(class_name: str) -> str:
    return f"half-terms-{class_name}"


def tags_structured_key(class_name: str) -> str:
    return f"tags-structured-{class_name}"


def tags_flat_key(class_name: str) -> str:
    return f"tags-flat-{class_name}"


class LocalCache:
    """JSON values keyed by string, wrapped in a versioned envelope.

    Reads validate the payload against a pydantic ``TypeAdapter``. Entries that
    fail to parse or validate are reset to the caller's default and logged.
    """

    def __init__(self, store: CacheStore) -> None:
        self.store = store

    @classmethod
    def from_path(cls, db_path: Path) -> "LocalCache":
        return cls(CacheStore(db_path))

    def read(self, key: str, adapter: TypeAdapter[T], default: Callable[[], T]) -> T | None:
        """Return the stored value, ``None`` when absent, or the default when unreadable."""

        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            payload = self._unwrap(json.loads(raw))
            return adapter.validate_python(payload)
        except (ValueError, ValidationError) as exc:
            LOGGER.warning(
                "Resetting unreadable cache entry",
                extra={"key": key, "error": str(exc)},
            )
            value = default()
            self.write(key, adapter, value)
            return value

    def write(self, key: str, adapter: TypeAdapter[T], value: T) -> None:
        self.store.set(key, self._wrap(adapter, value))

    def write_many(self, entries: Iterable[tuple[str, TypeAdapter[Any], Any]]) -> None:
        """Write several typed values in a single transaction."""

        self.store.set_many((key, self._wrap(adapter, value)) for key, adapter, value in entries)

    def delete(self, key: str) -> None:
        self.store.delete(key)

    @staticmethod
    def _wrap(adapter: TypeAdapter[Any], value: Any) -> str:
        envelope = {
            "version": ENVELOPE_VERSION,
            "data": adapter.dump_python(value, mode="json"),
        }
        return json.dumps(envelope, ensure_ascii=False)

    @staticmethod
    def _unwrap(decoded: Any) -> Any:
        if isinstance(decoded, dict) and set(decoded) == {"version", "data"}:
            version = decoded["version"]
            if not isinstance(version, int) or version > ENVELOPE_VERSION:
                raise ValueError(f"Unsupported cache envelope version: {version!r}")
            return decoded["data"]
        # Payloads written before the envelope existed are validated as-is.
        return decoded


__all__ = [
    "ENVELOPE_VERSION",
    "LESSON_PLANS_KEY",
    "LIBRARY_ACTIVITIES_KEY",
    "LocalCache",
    "half_terms_key",
    "lesson_data_key",
    "tags_flat_key",
    "tags_structured_key",
    "units_key",
]
