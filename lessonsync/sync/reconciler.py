"""Read/write precedence between the local cache and the optional remote store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Generic, Optional, TypeVar

import httpx
from pydantic import TypeAdapter

from lesson_store.cache import LocalCache
from lesson_store.remote import RemoteStore, RemoteStoreError

from .background import BackgroundTasks

LOGGER = logging.getLogger("lessonsync.sync.reconciler")

T = TypeVar("T")

REMOTE_FAILURES = (httpx.HTTPError, RemoteStoreError, ValueError)


class Source(str, Enum):
    REMOTE = "remote"
    CACHE = "cache"
    ABSENT = "absent"
    SEEDED = "seeded"
    EMPTY = "empty"
    CLEARED = "cleared"


@dataclass
class ReadResult(Generic[T]):
    value: Optional[T]
    source: Source


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    flag = getattr(value, "is_empty", None)
    if isinstance(flag, bool):
        return flag
    try:
        return len(value) == 0
    except TypeError:
        return False


class Reconciler:
    """Cache-first writes, remote-first reads.

    Reads adopt a non-empty remote answer; otherwise they fall back to the cache
    and push the cached value back to the remote in the background. Writes land
    in the cache synchronously and are mirrored without waiting.
    """

    def __init__(self, cache: LocalCache, remote: RemoteStore | None, tasks: BackgroundTasks) -> None:
        self.cache = cache
        self.remote = remote
        self.tasks = tasks

    async def read(
        self,
        key: str,
        adapter: TypeAdapter[T],
        *,
        default: Callable[[], T],
        fetch: Callable[[RemoteStore], Awaitable[Optional[T]]] | None = None,
        migrate: Callable[[RemoteStore, T], Coroutine[Any, Any, Any]] | None = None,
    ) -> ReadResult[T]:
        remote = self.remote
        if remote is not None and fetch is not None:
            try:
                value = await fetch(remote)
            except REMOTE_FAILURES as exc:
                LOGGER.warning("Remote read failed; using local cache", extra={"key": key, "error": str(exc)})
            else:
                if not _is_empty(value):
                    return ReadResult(value, Source.REMOTE)

        cached = self.cache.read(key, adapter, default)
        if cached is None:
            return ReadResult(None, Source.ABSENT)
        if remote is not None and migrate is not None:
            self.tasks.spawn(migrate(remote, cached), label=f"migrate:{key}")
        return ReadResult(cached, Source.CACHE)

    def write(
        self,
        key: str,
        adapter: TypeAdapter[T],
        value: T,
        *,
        mirror: Callable[[RemoteStore], Coroutine[Any, Any, Any]] | None = None,
        revision: int | None = None,
    ) -> None:
        self.cache.write(key, adapter, value)
        self.mirror(key, mirror, revision=revision)

    def mirror(
        self,
        key: str,
        mirror: Callable[[RemoteStore], Coroutine[Any, Any, Any]] | None,
        *,
        revision: int | None = None,
    ) -> None:
        """Queue a best-effort remote write; a no-op without a remote store."""

        remote = self.remote
        if remote is None or mirror is None:
            return
        label = f"mirror:{key}"
        if revision is None:
            self.tasks.spawn(mirror(remote), label=label)
        else:
            self.tasks.spawn_latest(key, revision, lambda: mirror(remote), label=label)


__all__ = ["REMOTE_FAILURES", "ReadResult", "Reconciler", "Source"]
