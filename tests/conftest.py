import asyncio
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import unquote

import httpx
import pytest

from workout_tracker_mcp.tracker import (
    ChecklistRepository,
    KeyValueStoreClient,
    LocalCache,
    SyncedStore,
    WorkoutRepository,
    WorkoutSessionMachine,
)

PREFIX = "/api/storage/"


class FakeStorage:
    """In-memory implementation of the storage API behind an httpx MockTransport."""

    def __init__(self, data: dict | None = None):
        self.data = dict(data or {})
        self.requests: list[tuple[str, str]] = []
        self.puts: list[tuple[str, object]] = []
        self.fail = False
        self.gate: asyncio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        key = unquote(request.url.path[len(PREFIX):])
        self.requests.append((request.method, key))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise httpx.ConnectError("storage offline", request=request)

        if request.method == "GET":
            if key not in self.data:
                return httpx.Response(404, json={"error": "Not found"})
            return httpx.Response(200, json={"value": self.data[key]})
        if request.method == "PUT":
            value = json.loads(request.content)["value"]
            self.data[key] = value
            self.puts.append((key, value))
            return httpx.Response(200, json={"success": True})
        if request.method == "DELETE":
            self.data.pop(key, None)
            return httpx.Response(200, json={"success": True})
        return httpx.Response(405, json={"error": "Method not allowed"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    async def wait_for_requests(self, count: int) -> None:
        while len(self.requests) < count:
            await asyncio.sleep(0)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def client(storage):
    return KeyValueStoreClient("http://testserver", transport=storage.transport())


@pytest.fixture
def cache():
    return LocalCache()


@pytest.fixture
def store(client, cache):
    return SyncedStore(client, cache)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def workouts(store):
    return WorkoutRepository(store)


@pytest.fixture
def checklist_items():
    return ["Water bottle", "Towel", "Gym shoes"]


@pytest.fixture
def checklist(store, checklist_items):
    return ChecklistRepository(store, defaults=checklist_items)


@pytest.fixture
def machine(workouts, checklist, clock):
    return WorkoutSessionMachine(workouts, checklist, clock=clock)
