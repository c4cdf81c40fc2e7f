import asyncio
import tempfile
import unittest
from pathlib import Path
from typing import List

from pydantic import TypeAdapter

from lesson_store import LocalCache, RemoteStore, RemoteStoreConfig
from lessonsync.sync import BackgroundTasks, Reconciler, Source
from tests.mocks.remote_api import RemoteAPIMock, unreachable_client

NAMES = TypeAdapter(List[str])


class BackgroundTasksTests(unittest.IsolatedAsyncioTestCase):
    async def test_superseded_revision_is_skipped(self) -> None:
        tasks = BackgroundTasks()
        written: List[int] = []

        async def push(revision: int) -> None:
            written.append(revision)

        tasks.spawn_latest("lesson-data-LKG", 1, lambda: push(1), label="first")
        tasks.spawn_latest("lesson-data-LKG", 2, lambda: push(2), label="second")
        await tasks.drain()

        self.assertEqual(written, [2])

    async def test_independent_keys_do_not_interfere(self) -> None:
        tasks = BackgroundTasks()
        written: List[str] = []

        async def push(key: str) -> None:
            written.append(key)

        tasks.spawn_latest("a", 3, lambda: push("a"), label="a")
        tasks.spawn_latest("b", 1, lambda: push("b"), label="b")
        await tasks.drain()

        self.assertEqual(sorted(written), ["a", "b"])

    async def test_failures_are_counted_not_raised(self) -> None:
        tasks = BackgroundTasks()

        async def boom() -> None:
            raise RuntimeError("remote down")

        with self.assertLogs("lessonsync.sync.background", level="WARNING"):
            tasks.spawn(boom(), label="boom")
            await tasks.drain()

        self.assertEqual(tasks.failures, 1)
        self.assertEqual(tasks.pending, 0)


class BackgroundTasksWithoutLoopTests(unittest.TestCase):
    def test_spawn_without_running_loop_is_dropped(self) -> None:
        tasks = BackgroundTasks()

        async def never() -> None:  # pragma: no cover - closed before running
            raise AssertionError

        with self.assertLogs("lessonsync.sync.background", level="WARNING"):
            self.assertIsNone(tasks.spawn(never(), label="orphan"))


class ReconcilerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.cache = LocalCache.from_path(Path(self._tmp.name) / "cache.sqlite")
        self.api = RemoteAPIMock()
        self.remote = RemoteStore(
            RemoteStoreConfig(base_url=self.api.base_url, api_key=self.api.api_key),
            client=self.api.build_async_client(),
        )
        self.tasks = BackgroundTasks()
        self.reconciler = Reconciler(self.cache, self.remote, self.tasks)

    async def asyncTearDown(self) -> None:
        await self.tasks.drain()
        await self.api.aclose()

    async def _fetch_names(self, remote: RemoteStore) -> List[str]:
        rows = await remote.fetch_activities()
        return [row["name"] for row in rows]

    async def test_non_empty_remote_answer_wins(self) -> None:
        self.api.seed("activities", [{"name": "Remote Song"}])
        self.cache.write("names", NAMES, ["Cached Song"])

        result = await self.reconciler.read("names", NAMES, default=list, fetch=self._fetch_names)

        self.assertEqual(result.source, Source.REMOTE)
        self.assertEqual(result.value, ["Remote Song"])

    async def test_empty_remote_falls_back_to_cache_and_migrates(self) -> None:
        self.cache.write("names", NAMES, ["Cached Song"])

        async def migrate(remote: RemoteStore, names: List[str]) -> None:
            await remote.upsert_activities([{"name": name, "category": "Welcome", "lesson_number": ""} for name in names])

        result = await self.reconciler.read(
            "names", NAMES, default=list, fetch=self._fetch_names, migrate=migrate
        )
        await self.tasks.drain()

        self.assertEqual(result.source, Source.CACHE)
        self.assertEqual(result.value, ["Cached Song"])
        self.assertEqual([row["name"] for row in self.api.tables["activities"]], ["Cached Song"])

    async def test_remote_outage_uses_cache(self) -> None:
        self.api.available = False
        self.cache.write("names", NAMES, ["Cached Song"])

        with self.assertLogs("lessonsync.sync.reconciler", level="WARNING"):
            result = await self.reconciler.read("names", NAMES, default=list, fetch=self._fetch_names)

        self.assertEqual(result.source, Source.CACHE)
        self.assertEqual(result.value, ["Cached Song"])

    async def test_missing_everywhere_is_absent(self) -> None:
        result = await self.reconciler.read("names", NAMES, default=list, fetch=self._fetch_names)
        self.assertEqual(result.source, Source.ABSENT)
        self.assertIsNone(result.value)

    async def test_write_lands_in_cache_and_mirrors(self) -> None:
        async def mirror(remote: RemoteStore) -> None:
            await remote.upsert_lessons({"class_name": "LKG", "data": {"names": ["Hello"]}})

        self.reconciler.write("names", NAMES, ["Hello"], mirror=mirror, revision=1)
        self.assertEqual(self.cache.read("names", NAMES, list), ["Hello"])

        await self.tasks.drain()
        self.assertEqual(self.api.tables["lessons"][0]["data"], {"names": ["Hello"]})

    async def test_write_succeeds_when_remote_is_unreachable(self) -> None:
        client = unreachable_client()
        self.addAsyncCleanup(client.aclose)
        remote = RemoteStore(RemoteStoreConfig(base_url="http://remote-down.local", api_key="k"), client=client)
        reconciler = Reconciler(self.cache, remote, self.tasks)

        async def mirror(store: RemoteStore) -> None:
            await store.upsert_lessons({"class_name": "LKG", "data": {}})

        with self.assertLogs("lessonsync.sync.background", level="WARNING"):
            reconciler.write("names", NAMES, ["Offline"], mirror=mirror)
            await self.tasks.drain()

        self.assertEqual(self.tasks.failures, 1)
        result = await reconciler.read("names", NAMES, default=list, fetch=self._fetch_names)
        self.assertEqual(result.value, ["Offline"])

    async def test_without_remote_mirrors_are_skipped(self) -> None:
        reconciler = Reconciler(self.cache, None, self.tasks)
        calls: List[str] = []

        async def mirror(remote: RemoteStore) -> None:  # pragma: no cover - never scheduled
            calls.append("called")

        reconciler.write("names", NAMES, ["Local"], mirror=mirror)
        await asyncio.sleep(0)

        self.assertEqual(self.tasks.pending, 0)
        self.assertEqual(calls, [])


if __name__ == "__main__":
    unittest.main()
