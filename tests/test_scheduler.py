"""Tests for timer-backed deferred calls delivered through an event queue."""

import queue

import pytest

from vitals_lib.scheduler import TimerScheduler


def test_fired_call_is_posted_not_run() -> None:
    """Test that the timer thread only enqueues the callback."""
    posted: "queue.Queue" = queue.Queue()
    ran = []
    scheduler = TimerScheduler(posted.put)

    scheduler.call_later(0.01, lambda: ran.append(1))

    fn = posted.get(timeout=2.0)
    assert ran == []
    fn()
    assert ran == [1]


def test_cancel_before_fire() -> None:
    """Test that a cancelled call is never posted."""
    posted: "queue.Queue" = queue.Queue()
    scheduler = TimerScheduler(posted.put)

    call = scheduler.call_later(0.05, lambda: None)
    call.cancel()

    assert call.cancelled
    with pytest.raises(queue.Empty):
        posted.get(timeout=0.2)


def test_cancel_after_post_still_wins() -> None:
    """Test that cancelling after the timer fired suppresses the callback."""
    posted: "queue.Queue" = queue.Queue()
    ran = []
    scheduler = TimerScheduler(posted.put)

    call = scheduler.call_later(0.01, lambda: ran.append(1))
    fn = posted.get(timeout=2.0)
    call.cancel()
    fn()

    assert ran == []
