# caption-backend/tests/test_polling.py

import threading

import pytest

from errors import JobCancelled, PollTimeoutError, RenderTimeoutError
from polling import CancellationToken, JobRegistry, poll_until


def test_poll_stops_at_first_finished_result():
    """
    Tests that polling returns the first finished value and never fetches again.
    """
    results = iter([1, 2, 3, 4, 5])
    calls = []

    def fetch():
        value = next(results)
        calls.append(value)
        return value

    value = poll_until(fetch, lambda v: v >= 3, interval=0)

    assert value == 3
    assert calls == [1, 2, 3]


def test_poll_reports_pending_results():
    pending = []
    results = iter(["queued", "processing", "completed"])

    poll_until(lambda: next(results), lambda s: s == "completed", interval=0, on_pending=pending.append)

    assert pending == ["queued", "processing"]


def test_poll_gives_up_after_max_attempts():
    calls = []

    with pytest.raises(RenderTimeoutError) as exc:
        poll_until(lambda: calls.append(1), lambda _: False, interval=0, max_attempts=4, timeout_error=RenderTimeoutError)

    assert len(calls) == 4
    assert "4 status checks" in str(exc.value)


def test_poll_gives_up_after_timeout():
    """
    Tests the deadline with a fake clock so the test does not sleep.
    """
    now = [0.0]

    def clock():
        return now[0]

    def fetch():
        now[0] += 5.0
        return "processing"

    with pytest.raises(PollTimeoutError) as exc:
        poll_until(fetch, lambda s: s == "done", interval=0, timeout=12, clock=clock, what="Render")

    assert str(exc.value) == "Render timed out after 12 seconds"


def test_cancelled_token_stops_before_fetching():
    token = CancellationToken()
    token.cancel()
    calls = []

    with pytest.raises(JobCancelled):
        poll_until(lambda: calls.append(1), lambda _: False, token=token)

    assert calls == []


def test_cancel_wakes_a_sleeping_poll():
    """
    Tests that cancelling from another thread interrupts a long poll interval.
    """
    token = CancellationToken()
    timer = threading.Timer(0.05, token.cancel)
    timer.start()

    with pytest.raises(JobCancelled):
        poll_until(lambda: "processing", lambda _: False, interval=30, token=token, what="Render")
    timer.cancel()


def test_job_registry_cancels_everything_in_flight():
    jobs = JobRegistry()
    first = jobs.register("a")
    second = jobs.register("b")
    jobs.release("b")

    assert len(jobs) == 1
    assert jobs.cancel_all() == 1
    assert first.cancelled
    assert not second.cancelled
