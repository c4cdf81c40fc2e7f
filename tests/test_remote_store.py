import asyncio
import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from lesson_store.remote import ACTIVITY_CONFLICT_COLUMNS, RemoteStore, RemoteStoreConfig, RemoteStoreError


class RecordingTransport:
    """Capture outgoing requests and answer from a handler."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


def _store(handler: Callable[[httpx.Request], httpx.Response]) -> tuple[RemoteStore, RecordingTransport]:
    recorder = RecordingTransport(handler)
    client = httpx.AsyncClient(base_url="http://remote.test", transport=httpx.MockTransport(recorder))
    store = RemoteStore(RemoteStoreConfig(base_url="http://remote.test", api_key="k-123"), client=client)
    return store, recorder


def _json(payload: Any, status: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status, json=payload)


def _run(coro: Any) -> Any:
    return asyncio.run(coro)


def test_select_sends_auth_headers_and_filters() -> None:
    store, recorder = _store(_json([{"class_name": "LKG", "data": {}}]))

    row = _run(store.fetch_lessons("LKG"))

    assert row == {"class_name": "LKG", "data": {}}
    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/lessons"
    assert request.url.params["class_name"] == "eq.LKG"
    assert request.url.params["select"] == "*"
    assert request.headers["apikey"] == "k-123"
    assert request.headers["authorization"] == "Bearer k-123"


def test_fetch_returns_none_when_no_rows() -> None:
    store, _ = _store(_json([]))
    assert _run(store.fetch_tag_statements("LKG")) is None


def test_upsert_uses_conflict_columns_and_merge_preference() -> None:
    store, recorder = _store(_json([{"id": "a-1"}], status=201))

    stored = _run(store.upsert_activities([{"name": "Hello", "category": "Welcome", "lesson_number": "1"}]))

    assert stored == [{"id": "a-1"}]
    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.params["on_conflict"] == ACTIVITY_CONFLICT_COLUMNS
    assert request.headers["prefer"] == "resolution=merge-duplicates,return=representation"
    assert json.loads(request.content) == [{"name": "Hello", "category": "Welcome", "lesson_number": "1"}]


def test_empty_upsert_skips_the_request() -> None:
    store, recorder = _store(_json([]))
    assert _run(store.upsert_activities([])) == []
    _run(store.upsert_lesson_plans([]))
    assert recorder.requests == []


def test_upsert_tolerates_empty_response() -> None:
    store, _ = _store(lambda request: httpx.Response(204))
    _run(store.upsert_lessons({"class_name": "LKG", "data": {}}))


def test_create_activity_drops_id_and_merges_on_identity() -> None:
    store, recorder = _store(_json([{"id": "remote-7", "name": "Hello"}], status=201))

    created = _run(store.create_activity({"id": "local-1", "name": "Hello"}))

    assert created["id"] == "remote-7"
    assert json.loads(recorder.requests[0].content) == [{"name": "Hello"}]
    assert recorder.requests[0].url.params["on_conflict"] == "name,category,lesson_number"
    assert recorder.requests[0].headers["prefer"] == "resolution=merge-duplicates,return=representation"


def test_update_and_delete_filter_by_id() -> None:
    store, recorder = _store(
        lambda request: httpx.Response(204) if request.method == "DELETE" else httpx.Response(200, json=[{"id": "x"}])
    )

    _run(store.update_activity("x", {"id": "x", "name": "Renamed"}))
    _run(store.delete_lesson_plan("plan-9"))

    patch, delete = recorder.requests
    assert patch.method == "PATCH"
    assert patch.url.params["id"] == "eq.x"
    assert json.loads(patch.content) == {"name": "Renamed"}
    assert delete.method == "DELETE"
    assert delete.url.path == "/rest/v1/lesson_plans"
    assert delete.url.params["id"] == "eq.plan-9"


def test_http_errors_propagate() -> None:
    store, _ = _store(_json({"message": "nope"}, status=500))
    with pytest.raises(httpx.HTTPStatusError):
        _run(store.fetch_activities())


def test_non_json_payload_raises_remote_error() -> None:
    store, _ = _store(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(RemoteStoreError):
        _run(store.fetch_lesson_plans())


def test_non_list_select_raises_remote_error() -> None:
    store, _ = _store(_json({"rows": []}))
    with pytest.raises(RemoteStoreError):
        _run(store.fetch_activities())


def test_create_without_record_raises() -> None:
    store, _ = _store(_json([], status=201))
    with pytest.raises(RemoteStoreError):
        _run(store.create_activity({"name": "Hello"}))


def test_export_all_reads_every_table() -> None:
    tables: Dict[str, List[Dict[str, Any]]] = {
        "/rest/v1/activities": [{"id": "a"}],
        "/rest/v1/lessons": [{"class_name": "LKG"}],
        "/rest/v1/lesson_plans": [],
        "/rest/v1/tag_statements": [{"class_name": "LKG"}],
    }
    store, _ = _store(lambda request: httpx.Response(200, json=tables[request.url.path]))

    snapshot = _run(store.export_all())

    assert snapshot["activities"] == [{"id": "a"}]
    assert snapshot["lesson_plans"] == []
    assert set(snapshot) == {"activities", "lessons", "lesson_plans", "tag_statements"}
