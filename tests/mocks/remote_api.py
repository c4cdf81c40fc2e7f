"""FastAPI mock of the PostgREST-style remote lesson store used in integration tests."""

from __future__ import annotations

import copy
from collections import defaultdict
from typing import Any, Dict, List

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

RESERVED_PARAMS = {"select", "on_conflict"}


class RemoteAPIMock:
    """In-memory tables keyed by name; rows are plain dicts.

    ``available = False`` makes every request answer 503 so tests can simulate
    an outage without swapping clients.
    """

    def __init__(
        self,
        *,
        base_url: str = "http://remote-mock.local",
        api_key: str = "test-key",
    ) -> None:
        self.base_url = base_url
        self.api_key = api_key
        self.available = True
        self.app = FastAPI()
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.requests: List[Dict[str, Any]] = []
        self._next_id = 1
        self._clients: List[httpx.AsyncClient] = []
        self._register_routes()

    def _register_routes(self) -> None:
        app = self.app

        @app.get("/rest/v1/{table}")
        async def select(table: str, request: Request) -> Any:
            self._check(request, table)
            filters = self._filters(request)
            return [copy.deepcopy(row) for row in self.tables[table] if self._matches(row, filters)]

        @app.post("/rest/v1/{table}")
        async def insert(table: str, request: Request) -> Any:
            self._check(request, table)
            payload = await request.json()
            rows = payload if isinstance(payload, list) else [payload]
            conflict = request.query_params.get("on_conflict")
            stored = [self._upsert(table, dict(row), conflict) for row in rows]
            return JSONResponse(stored, status_code=201)

        @app.patch("/rest/v1/{table}")
        async def update(table: str, request: Request) -> Any:
            self._check(request, table)
            filters = self._filters(request)
            payload = await request.json()
            updated = []
            for row in self.tables[table]:
                if self._matches(row, filters):
                    row.update(payload)
                    updated.append(copy.deepcopy(row))
            return updated

        @app.delete("/rest/v1/{table}")
        async def delete(table: str, request: Request) -> Response:
            self._check(request, table)
            filters = self._filters(request)
            self.tables[table] = [row for row in self.tables[table] if not self._matches(row, filters)]
            return Response(status_code=204)

    # ------------------------------------------------------------------

    def _check(self, request: Request, table: str) -> None:
        self.requests.append(
            {
                "method": request.method,
                "table": table,
                "params": dict(request.query_params),
                "prefer": request.headers.get("prefer"),
            }
        )
        if not self.available:
            raise HTTPException(status_code=503, detail="remote unavailable")
        if request.headers.get("apikey") != self.api_key:
            raise HTTPException(status_code=401, detail="invalid api key")
        if request.headers.get("authorization") != f"Bearer {self.api_key}":
            raise HTTPException(status_code=401, detail="invalid bearer token")

    @staticmethod
    def _filters(request: Request) -> Dict[str, str]:
        filters: Dict[str, str] = {}
        for key, value in request.query_params.items():
            if key in RESERVED_PARAMS or not value.startswith("eq."):
                continue
            filters[key] = value[3:]
        return filters

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Dict[str, str]) -> bool:
        return all(str(row.get(key)) == value for key, value in filters.items())

    def _upsert(self, table: str, row: Dict[str, Any], conflict: str | None) -> Dict[str, Any]:
        if conflict:
            columns = conflict.split(",")
            for existing in self.tables[table]:
                if all(existing.get(column) == row.get(column) for column in columns):
                    existing.update(row)
                    return copy.deepcopy(existing)
        if not row.get("id"):
            row["id"] = f"{table}-{self._next_id}"
            self._next_id += 1
        self.tables[table].append(row)
        return copy.deepcopy(row)

    # ------------------------------------------------------------------

    def seed(self, table: str, rows: List[Dict[str, Any]]) -> None:
        for row in rows:
            self._upsert(table, dict(row), None)

    def calls(self, method: str, table: str) -> List[Dict[str, Any]]:
        return [call for call in self.requests if call["method"] == method and call["table"] == table]

    def reset(self) -> None:
        self.tables.clear()
        self.requests.clear()
        self.available = True

    def build_async_client(self, *, timeout: float = 5.0) -> httpx.AsyncClient:
        client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=httpx.ASGITransport(app=self.app),
            timeout=timeout,
        )
        self._clients.append(client)
        return client

    async def aclose(self) -> None:
        for client in self._clients:
            await client.aclose()
        self._clients.clear()


def unreachable_client(base_url: str = "http://remote-down.local") -> httpx.AsyncClient:
    """Client whose every request fails with a connection error."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(handler))


__all__ = ["RemoteAPIMock", "unreachable_client"]
