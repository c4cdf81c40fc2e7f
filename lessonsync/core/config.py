"""
Typed configuration helpers for the lessonsync data layer.

The YAML file names the local cache location, the optional remote mirror, the
known classes and the category priority used when ordering lessons.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from lesson_store.remote import REMOTE_KEY_ENV, REMOTE_URL_ENV, RemoteStoreConfig, RemoteTables

CACHE_PATH_ENV = "LESSONSYNC_CACHE_PATH"

DEFAULT_CATEGORY_ORDER: List[str] = [
    "Welcome",
    "Kodaly Songs",
    "Kodaly Action Songs",
    "Action/Games Songs",
    "Rhythm Sticks",
    "Scarf Songs",
    "General Game",
    "Core Songs",
    "Parachute Games",
    "Percussion Games",
    "Goodbye",
    "Teaching Units",
    "Kodaly Rhythms",
    "Kodaly Games",
    "IWB Games",
]


class CacheConfig(BaseModel):
    """Where the local SQLite cache lives."""

    path: Path = Field(default=Path("outputs/lessonsync/cache.sqlite"))

    @field_validator("path", mode="before")
    @classmethod
    def coerce_path(cls, value: Any) -> Path:
        return Path(value).expanduser().resolve()


class RemoteTablesConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    activities: str = "activities"
    lessons: str = "lessons"
    lesson_plans: str = "lesson_plans"
    tag_statements: str = "tag_statements"


class RemoteConfig(BaseModel):
    """Connection info for the optional remote mirror."""

    url: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: str = REMOTE_KEY_ENV
    timeout: float | None = Field(default=30.0, gt=0)
    tables: RemoteTablesConfig = Field(default_factory=RemoteTablesConfig)

    @field_validator("url", "api_key", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    def resolved_api_key(self) -> Optional[str]:
        return self.api_key or os.getenv(self.api_key_env) or None

    @property
    def configured(self) -> bool:
        return bool(self.url and self.resolved_api_key())

    def to_store_config(self) -> RemoteStoreConfig:
        return RemoteStoreConfig(
            base_url=self.url or "",
            api_key=self.resolved_api_key(),
            tables=RemoteTables(**self.tables.model_dump()),
            timeout=self.timeout,
        )


class ClassConfig(BaseModel):
    """A class (cohort) whose lessons are tracked separately."""

    name: str
    display: Optional[str] = None
    seed_table: Optional[Path] = Field(
        default=None,
        description="CSV imported when the class has no stored lessons yet.",
    )

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("seed_table", mode="before")
    @classmethod
    def coerce_seed(cls, value: Any) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value).expanduser().resolve()

    @property
    def label(self) -> str:
        return self.display or self.name


def _default_classes() -> List[ClassConfig]:
    return [
        ClassConfig(name="LKG", display="Lower Kindergarten"),
        ClassConfig(name="UKG", display="Upper Kindergarten"),
        ClassConfig(name="Reception", display="Reception"),
    ]


class LessonSyncConfig(BaseModel):
    """Top-level configuration for the lesson data layer."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    classes: List[ClassConfig] = Field(default_factory=_default_classes)
    default_class: str = "LKG"
    category_order: List[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORY_ORDER))
    journal_path: Optional[Path] = None

    @field_validator("journal_path", mode="before")
    @classmethod
    def coerce_journal(cls, value: Any) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value).expanduser().resolve()

    @model_validator(mode="after")
    def check_default_class(self) -> "LessonSyncConfig":
        names = [entry.name for entry in self.classes]
        if len(set(names)) != len(names):
            raise ValueError("Class names must be unique")
        if names and self.default_class not in names:
            raise ValueError(f"default_class '{self.default_class}' is not one of: {', '.join(names)}")
        return self

    def class_config(self, name: str) -> ClassConfig:
        for entry in self.classes:
            if entry.name == name:
                return entry
        return ClassConfig(name=name)


def read_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at root of {path}, received {type(data)}")
    return data


def _resolve_config_path(value: Any, base_dir: Path) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    else:
        path = path.resolve()
    return str(path)


def _absolutize_paths(data: Dict[str, Any], base_dir: Path) -> None:
    cache = data.get("cache")
    if isinstance(cache, dict) and cache.get("path"):
        cache["path"] = _resolve_config_path(cache["path"], base_dir)

    if data.get("journal_path"):
        data["journal_path"] = _resolve_config_path(data["journal_path"], base_dir)

    classes = data.get("classes")
    if isinstance(classes, list):
        for entry in classes:
            if isinstance(entry, dict) and entry.get("seed_table"):
                entry["seed_table"] = _resolve_config_path(entry["seed_table"], base_dir)


def apply_env_overrides(config: LessonSyncConfig) -> LessonSyncConfig:
    """Return a copy with LESSONSYNC_* environment variables applied."""

    remote_updates: Dict[str, Any] = {}
    url = os.getenv(REMOTE_URL_ENV)
    if url and url.strip():
        remote_updates["url"] = url.strip()
    key = os.getenv(REMOTE_KEY_ENV)
    if key and key.strip():
        remote_updates["api_key"] = key.strip()
    if remote_updates:
        config = config.model_copy(update={"remote": config.remote.model_copy(update=remote_updates)})

    cache_path = os.getenv(CACHE_PATH_ENV)
    if cache_path and cache_path.strip():
        config = config.model_copy(update={"cache": CacheConfig(path=cache_path.strip())})
    return config


def load_config(path: Path, *, base_dir: Path | None = None) -> LessonSyncConfig:
    """Load the lessonsync YAML config, resolving relative paths against its folder."""
    path = path.expanduser().resolve()
    data = read_yaml_file(path)
    _absolutize_paths(data, base_dir=(base_dir or path.parent).resolve())
    try:
        return LessonSyncConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid lessonsync config in {path}") from exc


__all__ = [
    "CACHE_PATH_ENV",
    "CacheConfig",
    "ClassConfig",
    "DEFAULT_CATEGORY_ORDER",
    "LessonSyncConfig",
    "RemoteConfig",
    "RemoteTablesConfig",
    "apply_env_overrides",
    "load_config",
    "read_yaml_file",
]
