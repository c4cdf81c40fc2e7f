"""Append-only JSONL journal of data-layer changes (imports, renumbering, deletions)."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class ChangeEvent(BaseModel):
    """Structured record for a change applied to a class."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stage: str = Field(..., description="Operation family, e.g. 'import' or 'renumber'.")
    message: str = Field(..., description="Human-readable description of the change.")
    class_name: str | None = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class ChangeJournal:
    """Records change events as JSON lines.

    Without an ``output_path`` events are validated and returned but nothing is
    written.
    """

    def __init__(self, output_path: Path | None = None):
        self.output_path = output_path
        if output_path is not None:
            output_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: ChangeEvent | Dict[str, Any]) -> ChangeEvent:
        if not isinstance(event, ChangeEvent):
            event = ChangeEvent.model_validate(event)
        if self.output_path is not None:
            with self.output_path.open("a", encoding="utf-8") as handle:
                handle.write(event.model_dump_json() + "\n")
        return event

    def events(self, *, class_name: str | None = None) -> List[ChangeEvent]:
        """Read the journal back, oldest first, optionally for one class."""

        if self.output_path is None or not self.output_path.exists():
            return []
        with self.output_path.open(encoding="utf-8") as handle:
            events = [ChangeEvent.model_validate_json(line) for line in handle if line.strip()]
        if class_name is None:
            return events
        return [event for event in events if event.class_name == class_name]


__all__ = ["ChangeEvent", "ChangeJournal"]
