"""Deferred, cancelable calls executed on the controller's event worker."""

import logging
import threading
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class Cancelable(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Anything that can run a callback later and hand back a cancel handle."""

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> Cancelable:
        ...


class ScheduledCall:
    """Handle for one deferred call.

    The timer thread never runs the callback itself: it posts it to the
    event queue, and the posted wrapper re-checks ``cancelled`` so a
    cancel that races the timer still wins.
    """

    def __init__(
        self,
        delay_s: float,
        callback: Callable[[], None],
        post: Callable[[Callable[[], None]], None],
    ) -> None:
        self._callback = callback
        self._post = post
        self.cancelled = False
        self._timer = threading.Timer(delay_s, self._fire)
        self._timer.daemon = True

    def start(self) -> "ScheduledCall":
        self._timer.start()
        return self

    def cancel(self) -> None:
        self.cancelled = True
        self._timer.cancel()

    def _fire(self) -> None:
        if not self.cancelled:
            self._post(self._run)

    def _run(self) -> None:
        if not self.cancelled:
            self._callback()


class TimerScheduler:
    """Scheduler backed by threading.Timer, delivering into an event queue.

    Args:
        post: Function that enqueues a callable for the event worker
    """

    def __init__(self, post: Callable[[Callable[[], None]], None]) -> None:
        self._post = post

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> ScheduledCall:
        return ScheduledCall(delay_s, callback, self._post).start()
