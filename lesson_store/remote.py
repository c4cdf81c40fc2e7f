"""Async HTTP client for the optional remote lesson store (PostgREST-style API)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

import httpx

REMOTE_URL_ENV = "LESSONSYNC_REMOTE_URL"
REMOTE_KEY_ENV = "LESSONSYNC_REMOTE_KEY"


class RemoteStoreError(RuntimeError):
    """Raised when the remote store answers with something we cannot use."""


class RemoteNotConfiguredError(RemoteStoreError):
    """Raised by remote-only operations when no remote store is configured."""


@dataclass
class RemoteTables:
    activities: str = "activities"
    lessons: str = "lessons"
    lesson_plans: str = "lesson_plans"
    tag_statements: str = "tag_statements"


@dataclass
class RemoteStoreConfig:
    base_url: str
    api_key: str | None = None
    tables: RemoteTables = field(default_factory=RemoteTables)
    timeout: float | None = 30.0


ACTIVITY_CONFLICT_COLUMNS = "name,category,lesson_number"


class RemoteStore:
    def __init__(
        self,
        config: RemoteStoreConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        if client is None:
            self._client = httpx.AsyncClient(
                base_url=config.base_url.rstrip("/"),
                timeout=config.timeout,
            )
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    @property
    def tables(self) -> RemoteTables:
        return self._config.tables

    # ------------------------------------------------------------------
    # Activities

    async def fetch_activities(self) -> List[Dict[str, Any]]:
        return await self._select(self.tables.activities)

    async def upsert_activities(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Upsert activities on their (name, category, lesson_number) identity."""

        if not rows:
            return []
        return await self._upsert(self.tables.activities, rows, on_conflict=ACTIVITY_CONFLICT_COLUMNS)

    async def create_activity(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Create an activity, or return the row already holding its identity."""

        payload = {key: value for key, value in row.items() if key != "id"}
        response = await self._client.post(
            self._path(self.tables.activities),
            params={"on_conflict": ACTIVITY_CONFLICT_COLUMNS},
            json=[payload],
            headers=self._build_headers(prefer="resolution=merge-duplicates,return=representation"),
        )
        return self._single(self._json(response))

    async def update_activity(self, activity_id: str, row: Dict[str, Any]) -> Dict[str, Any]:
        payload = {key: value for key, value in row.items() if key != "id"}
        response = await self._client.patch(
            self._path(self.tables.activities),
            params={"id": f"eq.{activity_id}"},
            json=payload,
            headers=self._build_headers(prefer="return=representation"),
        )
        return self._single(self._json(response))

    async def delete_activity(self, activity_id: str) -> None:
        await self._delete(self.tables.activities, activity_id)

    # ------------------------------------------------------------------
    # Per-class lesson bundles

    async def fetch_lessons(self, class_name: str) -> Dict[str, Any] | None:
        rows = await self._select(self.tables.lessons, class_name=f"eq.{class_name}")
        return rows[0] if rows else None

    async def upsert_lessons(self, row: Dict[str, Any]) -> None:
        await self._upsert(self.tables.lessons, [row], on_conflict="class_name")

    # ------------------------------------------------------------------
    # Lesson plans

    async def fetch_lesson_plans(self) -> List[Dict[str, Any]]:
        return await self._select(self.tables.lesson_plans)

    async def upsert_lesson_plans(self, rows: List[Dict[str, Any]]) -> None:
        if rows:
            await self._upsert(self.tables.lesson_plans, rows, on_conflict="id")

    async def delete_lesson_plan(self, plan_id: str) -> None:
        await self._delete(self.tables.lesson_plans, plan_id)

    # ------------------------------------------------------------------
    # Tag statements

    async def fetch_tag_statements(self, class_name: str) -> Dict[str, Any] | None:
        rows = await self._select(self.tables.tag_statements, class_name=f"eq.{class_name}")
        return rows[0] if rows else None

    async def upsert_tag_statements(self, row: Dict[str, Any]) -> None:
        await self._upsert(self.tables.tag_statements, [row], on_conflict="class_name")

    # ------------------------------------------------------------------

    async def export_all(self) -> Dict[str, List[Dict[str, Any]]]:
        """Return every remote collection (used for backups)."""

        return {
            "activities": await self._select(self.tables.activities),
            "lessons": await self._select(self.tables.lessons),
            "lesson_plans": await self._select(self.tables.lesson_plans),
            "tag_statements": await self._select(self.tables.tag_statements),
        }

    async def aclose(self) -> None:
        if getattr(self, "_owns_client", False):
            await self._client.aclose()

    async def __aenter__(self) -> "RemoteStore":  # pragma: no cover - convenience
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - convenience
        await self.aclose()

    # ------------------------------------------------------------------
    # Internal helpers

    async def _select(self, table: str, **filters: str) -> List[Dict[str, Any]]:
        params = {"select": "*", **filters}
        response = await self._client.get(
            self._path(table),
            params=params,
            headers=self._build_headers(),
        )
        data = self._json(response)
        if not isinstance(data, list):
            raise RemoteStoreError(f"Expected a list from {table}, received {type(data).__name__}")
        return [row for row in data if isinstance(row, dict)]

    async def _upsert(self, table: str, rows: List[Dict[str, Any]], *, on_conflict: str) -> List[Dict[str, Any]]:
        response = await self._client.post(
            self._path(table),
            params={"on_conflict": on_conflict},
            json=rows,
            headers=self._build_headers(prefer="resolution=merge-duplicates,return=representation"),
        )
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return []
        data = self._json(response)
        return data if isinstance(data, list) else []

    async def _delete(self, table: str, record_id: str) -> None:
        response = await self._client.delete(
            self._path(table),
            params={"id": f"eq.{record_id}"},
            headers=self._build_headers(),
        )
        response.raise_for_status()

    @staticmethod
    def _path(table: str) -> str:
        return f"/rest/v1/{table}"

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteStoreError("Remote store returned non-JSON payload") from exc

    @staticmethod
    def _single(data: Any) -> Dict[str, Any]:
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            raise RemoteStoreError("Remote store returned no record")
        return data

    def _build_headers(self, *, prefer: str | None = None) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self._config.api_key:
            headers["apikey"] = self._config.api_key
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        if prefer:
            headers["Prefer"] = prefer
        return headers


__all__ = [
    "ACTIVITY_CONFLICT_COLUMNS",
    "REMOTE_KEY_ENV",
    "REMOTE_URL_ENV",
    "RemoteNotConfiguredError",
    "RemoteStore",
    "RemoteStoreConfig",
    "RemoteStoreError",
    "RemoteTables",
]
