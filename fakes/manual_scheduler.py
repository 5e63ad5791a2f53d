"""Deterministic scheduler for unit tests: time only moves when told to."""

from typing import Callable, List


class ManualCall:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock advances only through advance().

    Example:
        scheduler = ManualScheduler()
        session = MeasurementSession(..., scheduler=scheduler)
        session.start("HR")
        scheduler.advance(0.3)   # fires the debounced request
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.calls: List[ManualCall] = []

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> ManualCall:
        call = ManualCall(self.now + delay_s, callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> List[ManualCall]:
        return [c for c in self.calls if not c.cancelled and not c.fired]

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due calls in order.

        Returns:
            Number of callbacks run
        """
        target = self.now + seconds
        fired = 0
        while True:
            due = sorted(
                (c for c in self.pending if c.due <= target), key=lambda c: c.due
            )
            if not due:
                break
            call = due[0]
            self.now = call.due
            call.fired = True
            call.callback()
            fired += 1
        self.now = target
        return fired
