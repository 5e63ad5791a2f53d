"""Measurement session: request/response state machine for one sensor key."""

import logging
from typing import Callable, Optional, Set, Tuple

from vitals_lib.config import WizardConfig
from vitals_lib.dispatcher import CommandDispatcher, keys_sharing_command
from vitals_lib.display import DisplayBoard, StoredValues
from vitals_lib.formatting import (
    ERROR_TEXT,
    WAITING_TEXT,
    clamp,
    format_value,
    valid_by_range,
)
from vitals_lib.models import Reading, SessionState
from vitals_lib.scheduler import Cancelable, Scheduler

logger = logging.getLogger(__name__)

AcceptListener = Callable[[Reading, str], None]


class MeasurementSession:
    """Acquires one value for the currently active sensor key.

    State machine:
        IDLE --start--> WAITING --valid (lock)--> LOCKED
                        WAITING --NA/OUT x max_retries--> ABANDONED
                        any --start(other key)--> WAITING

    Every deferred request is tagged with (key, generation). Starting or
    stopping bumps the generation and cancels the pending call, so a retry
    scheduled for a previous screen can never fire a command.

    Not thread-safe: all calls must come from the controller's event worker.
    """

    def __init__(
        self,
        config: WizardConfig,
        dispatcher: CommandDispatcher,
        display: DisplayBoard,
        stored_values: StoredValues,
        scheduler: Scheduler,
        on_accept: Optional[AcceptListener] = None,
    ) -> None:
        """Initialize an idle session.

        Args:
            config: Ranges, timing and default lock policy
            dispatcher: Sends request tokens
            display: Receives placeholder and value text
            stored_values: Receives every accepted value
            scheduler: Runs deferred requests
            on_accept: Called with (reading, text) for every accepted value
        """
        self._config = config
        self._dispatcher = dispatcher
        self._display = display
        self._stored = stored_values
        self._scheduler = scheduler
        self._on_accept = on_accept

        self._active_key: Optional[str] = None
        self._active = False
        self._retry_count = 0
        self._lock_on_first_valid = config.lock_on_first_valid
        self._locking = self._lock_on_first_valid  # Policy captured at start()
        self._state = SessionState.IDLE
        self._generation = 0

        self._pending: Optional[Cancelable] = None
        self._pending_tag: Optional[Tuple[str, int]] = None

        # Sibling keys delivered by the same combined request
        self._companions: Set[str] = set()
        self._captured: Set[str] = set()

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def active_key(self) -> Optional[str]:
        return self._active_key

    @property
    def active(self) -> bool:
        return self._active

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending_tag(self) -> Optional[Tuple[str, int]]:
        """(key, generation) of the deferred request, if one is scheduled."""
        return self._pending_tag

    @property
    def lock_on_first_valid(self) -> bool:
        return self._lock_on_first_valid

    @lock_on_first_valid.setter
    def lock_on_first_valid(self, flag: bool) -> None:
        """Set the lock policy. Takes effect at the next start()."""
        self._lock_on_first_valid = bool(flag)

    # ========================================================================
    # Transitions
    # ========================================================================

    def start(self, key: str) -> None:
        """Arm the session for key and schedule its request.

        Args:
            key: Sensor key to measure
        """
        self._cancel_pending()
        self._generation += 1

        self._active_key = key
        self._active = True
        self._retry_count = 0
        self._locking = self._lock_on_first_valid
        self._state = SessionState.WAITING
        self._companions = set(keys_sharing_command(key))
        self._captured = set()

        self._display.set(key, WAITING_TEXT)
        logger.info(f"Measurement started for {key} (generation {self._generation})")

        self._schedule_command(key, self._config.command_delay_s)

    def stop(self) -> None:
        """Deactivate the session, leaving the displayed value untouched."""
        self._cancel_pending()
        self._generation += 1
        self._active = False
        self._companions = set()
        if self._state is SessionState.WAITING:
            self._state = SessionState.IDLE
            logger.debug(f"Measurement for {self._active_key} stopped")

    def handle_reading(self, reading: Reading) -> Optional[str]:
        """Apply one decoded reading.

        Args:
            reading: Reading from the codec

        Returns:
            Text rendered for the active key, or None if nothing was rendered
            for it (foreign key, inactive session, out-of-range value)
        """
        if reading.key != self._active_key:
            self._capture_companion(reading)
            return None

        if not self._active:
            logger.debug(f"Ignoring {reading.key} reading, session not active")
            return None

        if reading.is_error:
            return self._handle_error_sentinel(reading.key)

        return self._handle_value(reading)

    # ========================================================================
    # Internal Helpers
    # ========================================================================

    def _handle_error_sentinel(self, key: str) -> str:
        self._display.set(key, ERROR_TEXT)
        self._retry_count += 1

        if self._retry_count < self._config.max_retries:
            logger.info(
                f"{key} reported error, retry {self._retry_count}/"
                f"{self._config.max_retries - 1} in {self._config.retry_delay_s}s"
            )
            self._schedule_command(key, self._config.retry_delay_s)
        else:
            self._cancel_pending()
            self._active = False
            self._state = SessionState.ABANDONED
            logger.warning(
                f"Measurement for {key} abandoned after {self._retry_count} errors"
            )

        return ERROR_TEXT

    def _handle_value(self, reading: Reading) -> Optional[str]:
        assert reading.value is not None

        if not valid_by_range(reading.key, reading.value, self._config.ranges):
            logger.debug(f"Discarding out-of-range {reading.key} value {reading.value}")
            return None

        # Settle state before listeners run, they may start the next measurement
        self._cancel_pending()
        locked = self._locking
        if locked:
            self._active = False
            self._state = SessionState.LOCKED

        text = self._accept(reading)
        if locked:
            logger.info(f"Measurement locked for {reading.key}: {text}")

        return text

    def _capture_companion(self, reading: Reading) -> None:
        """Store a sibling key answered by the active key's combined request."""
        if reading.key not in self._companions or reading.is_error:
            return
        if self._locking and reading.key in self._captured:
            return

        assert reading.value is not None
        if not valid_by_range(reading.key, reading.value, self._config.ranges):
            logger.debug(f"Discarding out-of-range companion {reading.key} value {reading.value}")
            return

        self._captured.add(reading.key)
        text = self._accept(reading, companion=True)
        logger.info(f"Stored companion value for {reading.key}: {text}")

    def _accept(self, reading: Reading, companion: bool = False) -> str:
        assert reading.value is not None
        value = reading.value
        bound = self._config.range_for(reading.key)
        if bound is not None:
            value = clamp(value, bound.minimum, bound.maximum)

        text = format_value(reading.key, value)
        self._display.set(reading.key, text)
        self._stored.put(reading.key, text, companion=companion)

        if self._on_accept is not None:
            self._on_accept(reading, text)
        return text

    def _schedule_command(self, key: str, delay_s: float) -> None:
        self._cancel_pending()
        generation = self._generation
        self._pending_tag = (key, generation)
        self._pending = self._scheduler.call_later(
            delay_s, lambda: self._on_command_due(key, generation)
        )

    def _on_command_due(self, key: str, generation: int) -> None:
        if self._pending_tag == (key, generation):
            self._pending = None
            self._pending_tag = None

        if not self._active or (key, generation) != (self._active_key, self._generation):
            logger.debug(f"Dropping stale request for {key} (generation {generation})")
            return

        self._dispatcher.send_command_for_key(key)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            logger.debug(f"Cancelled pending request {self._pending_tag}")
        self._pending = None
        self._pending_tag = None
