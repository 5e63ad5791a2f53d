"""Starts and stops measurements as the wizard moves between screens."""

import logging
from typing import Optional

from vitals_lib.context import SessionContext
from vitals_lib.models import Reading, SensorKey

logger = logging.getLogger(__name__)


class ScreenOrchestrator:
    """Maps wizard screens to sensor keys and drives the measurement session."""

    def __init__(self, context: SessionContext) -> None:
        self._ctx = context
        self._current_screen: Optional[int] = None

    @property
    def current_screen(self) -> Optional[int]:
        return self._current_screen

    @property
    def progress_percent(self) -> float:
        """Wizard progress, 0 on the first screen and 100 on the last."""
        if self._current_screen is None:
            return 0.0
        total = self._ctx.config.total_screens
        if total <= 1:
            return 100.0
        progress = (self._current_screen - 1) / (total - 1) * 100.0
        return max(0.0, min(progress, 100.0))

    def on_screen_change(self, screen: int) -> Optional[SensorKey]:
        """React to navigation onto a screen.

        Args:
            screen: Destination screen number (1-based)

        Returns:
            Key measured (or shown from cache) on that screen, or None
        """
        self._current_screen = screen
        key = self._ctx.config.key_for_screen(screen)
        session = self._ctx.session

        if key is None:
            session.stop()
            logger.debug(f"Screen {screen} has no measurement")
            return None

        stored = self._ctx.stored_values
        cached = stored.get(key)
        if cached is not None and stored.from_companion(key):
            # Already answered by the combined request of a sibling key
            session.stop()
            self._ctx.display.set(key, cached)
            logger.info(f"Screen {screen}: showing stored {key} value {cached!r}")
            return key

        logger.info(f"Screen {screen}: measuring {key}")
        session.start(key)
        return key

    def handle_reading(self, reading: Reading) -> None:
        """Forward a decoded reading to the session."""
        self._ctx.session.handle_reading(reading)
