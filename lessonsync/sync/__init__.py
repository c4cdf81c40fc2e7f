"""Cache/remote reconciliation and background mirroring."""

from .background import BackgroundTasks
from .reconciler import REMOTE_FAILURES, ReadResult, Reconciler, Source
from .wire import (
    activity_to_row,
    bundle_to_row,
    plan_to_row,
    row_to_activity,
    row_to_bundle,
    row_to_plan,
    tags_to_row,
)

__all__ = [
    "BackgroundTasks",
    "REMOTE_FAILURES",
    "ReadResult",
    "Reconciler",
    "Source",
    "activity_to_row",
    "bundle_to_row",
    "plan_to_row",
    "row_to_activity",
    "row_to_bundle",
    "row_to_plan",
    "tags_to_row",
]
