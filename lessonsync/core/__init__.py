"""
Configuration and change-journal utilities for lessonsync.

These modules carry no dependency on the registry or sync layers so either can
import them freely.
"""

from .config import ClassConfig, LessonSyncConfig, RemoteConfig, apply_env_overrides, load_config
from .journal import ChangeEvent, ChangeJournal

__all__ = [
    "ChangeEvent",
    "ChangeJournal",
    "ClassConfig",
    "LessonSyncConfig",
    "RemoteConfig",
    "apply_env_overrides",
    "load_config",
]
