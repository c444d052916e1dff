import asyncio

import httpx
import pytest

from mocktest.session.time_tracking import TimeAccountant


@pytest.fixture
def tracker(api, scheduler):
    return TimeAccountant(api, "a1", scheduler, sync_interval=15)


async def test_stop_adds_whole_seconds(tracker, scheduler):
    tracker.start("q1")
    await scheduler.advance(7.9)
    assert tracker.stop() == 7
    assert tracker.question_times == {"q1": 7}
    assert tracker.pending == {"q1": 7}


async def test_start_stops_previous_question(tracker, scheduler):
    tracker.start("q1")
    await scheduler.advance(3)
    tracker.start("q2")
    await scheduler.advance(4)
    tracker.stop()
    assert tracker.question_times == {"q1": 3, "q2": 4}


async def test_sum_equals_active_time_minus_hidden_gap(tracker, scheduler):
    tracker.start("q1")
    await scheduler.advance(10)
    tracker.pause()
    await scheduler.advance(30)
    tracker.resume()
    await scheduler.advance(5)
    tracker.start("q2")
    await scheduler.advance(20)
    tracker.stop()

    assert tracker.total_time() == 35
    assert tracker.question_times == {"q1": 15, "q2": 20}


async def test_current_time_includes_running_span(tracker, scheduler):
    tracker.start("q1")
    await scheduler.advance(4)
    tracker.stop()
    tracker.start("q1")
    await scheduler.advance(2)
    assert tracker.current_time("q1") == 6


async def test_flush_sends_deltas_once(tracker, scheduler, backend):
    tracker.start("q1")
    await scheduler.advance(12)
    tracker.stop()

    assert await tracker.flush() is True
    assert await tracker.flush() is True
    assert backend.bodies("POST", "/attempts/a1/sync-times") == [
        {"questionTimes": {"q1": 12}}
    ]
    assert tracker.pending == {}


async def test_failed_sync_is_included_in_next(tracker, scheduler, backend):
    backend.route("POST", "/attempts/a1/sync-times", status=500, json={"message": "down"})
    tracker.start_sync()
    tracker.start("q1")
    await scheduler.advance(10)
    tracker.stop()
    tracker.start("q1")

    # cycle at t=15 fails with {"q1": 10}
    await scheduler.advance(5)
    assert len(backend.calls("POST", "/attempts/a1/sync-times")) == 1
    assert tracker.pending == {"q1": 10}

    await scheduler.advance(15)
    # cycle at t=30 fails again
    tracker.stop()
    assert tracker.pending == {"q1": 30}

    backend.route("POST", "/attempts/a1/sync-times", json={"success": True})
    tracker.start("q2")
    await scheduler.advance(15)
    bodies = backend.bodies("POST", "/attempts/a1/sync-times")
    assert bodies[-1] == {"questionTimes": {"q1": 30}}
    assert tracker.pending == {}
    tracker.stop_sync()


async def test_unload_sends_beacon(tracker, scheduler, backend):
    tracker.start("q2")
    await scheduler.advance(9)
    await tracker.unload()
    assert backend.bodies("POST", "/attempts/a1/sync-times") == [
        {"questionTimes": {"q2": 9}}
    ]
    assert not tracker.is_tracking


async def test_final_flush_waits_for_sync_in_flight(tracker, scheduler, backend):
    entered = asyncio.Event()
    release = asyncio.Event()
    statuses = iter([503, 200])

    async def handler(request):
        status = next(statuses)
        if status == 503:
            entered.set()
            await release.wait()
        return httpx.Response(status, json={})

    backend.route("POST", "/attempts/a1/sync-times", handler=handler)
    tracker.start("q1")
    await scheduler.advance(7)
    tracker.stop()

    periodic = asyncio.create_task(tracker.flush())
    await entered.wait()
    final = asyncio.create_task(tracker.flush())
    await asyncio.sleep(0)
    release.set()

    assert await periodic is False
    assert await final is True
    assert backend.bodies("POST", "/attempts/a1/sync-times") == [
        {"questionTimes": {"q1": 7}},
        {"questionTimes": {"q1": 7}},
    ]
    assert tracker.pending == {}
