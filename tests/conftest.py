import inspect
import itertools
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from mocktest.api.client import ApiClient
from mocktest.scheduling import TimerHandle

API_BASE = "http://backend.test/api"


class ManualScheduler:
    """Scheduler on a fake clock. Time only moves on `advance`."""

    def __init__(self, start: float = 1000.0) -> None:
        self.clock = start
        self.timers: List[Dict[str, Any]] = []
        self.spawned: List[Any] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self.clock

    def call_later(self, delay, callback) -> TimerHandle:
        return self._add(delay, None, callback)

    def call_every(self, interval, callback) -> TimerHandle:
        return self._add(interval, interval, callback)

    def spawn(self, awaitable) -> None:
        self.spawned.append(awaitable)

    def active_timers(self) -> int:
        return sum(1 for t in self.timers if not t["handle"].cancelled)

    def _add(self, delay, interval, callback) -> TimerHandle:
        handle = TimerHandle()
        self.timers.append(
            {
                "due": self.clock + delay,
                "seq": next(self._seq),
                "interval": interval,
                "callback": callback,
                "handle": handle,
            }
        )
        return handle

    async def run_pending(self) -> None:
        while self.spawned:
            await self.spawned.pop(0)

    async def advance(self, seconds: float) -> None:
        """Move the clock, firing due callbacks in order and awaiting their work."""
        target = self.clock + seconds
        while True:
            self.timers = [t for t in self.timers if not t["handle"].cancelled]
            due = [t for t in self.timers if t["due"] <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t["due"], t["seq"]))
            self.clock = timer["due"]
            if timer["interval"] is None:
                self.timers.remove(timer)
            else:
                timer["due"] += timer["interval"]
                timer["seq"] = next(self._seq)
            result = timer["callback"]()
            if inspect.isawaitable(result):
                await result
            await self.run_pending()
        self.clock = target
        await self.run_pending()


Handler = Callable[[httpx.Request], httpx.Response]


class FakeBackend:
    """Routes keyed by (method, path below /api); records every request."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.route("GET", "/health", json={"status": "ok"})
        self.route("POST", "/attempts/sync", json={"success": True})
        self.route("POST", "/attempts/warning", json={"success": True})
        self.route("POST", "/attempts/request-resume", json={"success": True})
        self.route("POST", "/attempts/submit", json={"success": True})

    def route(
        self,
        method: str,
        path: str,
        status: int = 200,
        json: Any = None,
        handler: Optional[Handler] = None,
    ) -> None:
        self.routes[(method, path)] = handler or (status, json)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len("/api"):]
        entry = self.routes.get((request.method, path))
        if entry is None:
            return httpx.Response(404, json={"message": f"No route {path}"})
        if callable(entry):
            return entry(request)
        status, body = entry
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and r.url.path == "/api" + path
        ]

    def bodies(self, method: str, path: str) -> List[Any]:
        return [json.loads(r.content) for r in self.calls(method, path)]


def make_test(duration: int = 180) -> Dict[str, Any]:
    return {
        "id": "t1",
        "name": "JEE Mock 1",
        "duration": duration,
        "totalMarks": 16,
        "isLive": True,
        "sections": [
            {
                "id": "s1",
                "name": "Physics",
                "questionType": "MCQ",
                "questions": [
                    {"id": "q1", "questionImage": "/img/q1.png", "correctOption": "A"},
                    {"id": "q2", "questionImage": "/img/q2.png", "correctOption": "B"},
                ],
            },
            {
                "id": "s2",
                "name": "Mathematics Integer",
                "questionType": "INTEGER",
                "questions": [
                    {"id": "q3", "questionImage": "/img/q3.png", "correctInteger": 0},
                    {"id": "q4", "questionImage": "/img/q4.png", "correctInteger": 12},
                ],
            },
        ],
    }


def make_attempt(**overrides: Any) -> Dict[str, Any]:
    attempt = {
        "id": "a1",
        "testId": "t1",
        "candidateName": "Asha",
        "isCompleted": False,
        "warningCount": 0,
        "answers": [],
        "test": make_test(),
    }
    attempt.update(overrides)
    return attempt


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def backend() -> FakeBackend:
    backend = FakeBackend()
    backend.route("GET", "/attempts/a1", json=make_attempt())
    backend.route("GET", "/tests/t1", json=make_test())
    backend.route("POST", "/attempts/a1/sync-times", json={"success": True})
    return backend


@pytest.fixture
async def api(backend: FakeBackend):
    client = ApiClient(base_url=API_BASE, transport=httpx.MockTransport(backend))
    yield client
    await client.close()
