"""Shared context object for lessonsync operations and its bootstrap helper."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import httpx
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

from lesson_store.cache import LocalCache
from lesson_store.remote import RemoteStore
from lessonsync.core.config import LessonSyncConfig, apply_env_overrides, load_config
from lessonsync.core.journal import ChangeEvent, ChangeJournal
from lessonsync.registry.state import RegistrySnapshot
from lessonsync.sync.background import BackgroundTasks
from lessonsync.sync.reconciler import Reconciler

DEFAULT_CONFIG_PATH = Path("config/lessonsync.yaml")
LOGGER = logging.getLogger(__name__)


class LessonContext(BaseModel):
    """Everything an operation needs: config, stores, journal and the active snapshot.

    ``snapshot`` is replaced wholesale by each operation. ``cleared`` makes the
    next loads start from an empty class instead of reading any store.
    """

    config: LessonSyncConfig
    reconciler: Reconciler
    journal: ChangeJournal
    snapshot: RegistrySnapshot
    cleared: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def cache(self) -> LocalCache:
        return self.reconciler.cache

    @property
    def remote(self) -> Optional[RemoteStore]:
        return self.reconciler.remote

    @property
    def tasks(self) -> BackgroundTasks:
        return self.reconciler.tasks

    @property
    def class_name(self) -> str:
        return self.snapshot.class_name

    def record(self, stage: str, message: str, **payload: object) -> ChangeEvent:
        return self.journal.log(
            ChangeEvent(stage=stage, message=message, class_name=self.class_name, payload=dict(payload))
        )

    async def aclose(self) -> None:
        """Wait for queued mirrors, then release the HTTP client."""
        await self.tasks.drain()
        if self.remote is not None:
            await self.remote.aclose()


def bootstrap(
    config_path: Path | None = None,
    *,
    repo_root: Path | None = None,
    class_name: str | None = None,
    cache_path: Path | None = None,
    remote_client: httpx.AsyncClient | None = None,
    cleared: bool = False,
) -> LessonContext:
    """
    Load configuration and environment variables and construct the context.

    Parameters
    ----------
    config_path:
        Path to the lessonsync YAML. Defaults to ``config/lessonsync.yaml``
        under ``repo_root``; built-in defaults are used when that file is missing.
    repo_root:
        Directory holding the ``.env`` file. Defaults to ``Path.cwd()``.
    class_name:
        Class to start on. Defaults to ``default_class`` from the config.
    cache_path:
        Override for the SQLite cache location.
    remote_client:
        Pre-built ``httpx.AsyncClient`` for the remote store (tests inject one).
    cleared:
        Start every load from an empty class.

    Nothing is read from the stores here; call ``service.load_class`` next.
    """

    repo_root = (repo_root or Path.cwd()).resolve()
    load_dotenv(repo_root / ".env")

    if config_path is not None:
        config = load_config(config_path)
    else:
        default_path = repo_root / DEFAULT_CONFIG_PATH
        config = load_config(default_path) if default_path.exists() else LessonSyncConfig()
    config = apply_env_overrides(config)
    if cache_path is not None:
        config = config.model_copy(
            update={"cache": config.cache.model_copy(update={"path": cache_path.expanduser().resolve()})}
        )

    cache = LocalCache.from_path(config.cache.path)
    remote: RemoteStore | None = None
    if config.remote.configured:
        remote = RemoteStore(config.remote.to_store_config(), client=remote_client)
    else:
        LOGGER.info("Remote store not configured; running on the local cache only.")

    return LessonContext(
        config=config,
        reconciler=Reconciler(cache, remote, BackgroundTasks()),
        journal=ChangeJournal(config.journal_path),
        snapshot=RegistrySnapshot(class_name=class_name or config.default_class),
        cleared=cleared,
    )


__all__ = ["DEFAULT_CONFIG_PATH", "LessonContext", "bootstrap"]
