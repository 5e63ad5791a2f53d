"""High-level controller: connection lifecycle, read loop and event worker."""

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional

from vitals_lib import parsing, protocol
from vitals_lib.config import WizardConfig
from vitals_lib.context import SessionContext
from vitals_lib.display import DisplayBoard
from vitals_lib.errors import SerialIOError
from vitals_lib.framing import LineFramer
from vitals_lib.models import ConnectionState, Reading, SensorKey, SessionState
from vitals_lib.orchestrator import ScreenOrchestrator
from vitals_lib.scheduler import TimerScheduler
from vitals_lib.session import AcceptListener
from vitals_lib.transport import PortWatcher, SerialLike, Transport

logger = logging.getLogger(__name__)

STATUS_CONNECTED = "Connected"
STATUS_DISCONNECTED = "Disconnected"
STATUS_READ_ERROR = "Read error"
STATUS_PORT_AVAILABLE = "Port available – click to connect"

# Upper bound for a caller waiting on the event worker
EVENT_WAIT_TIMEOUT_S = 5.0


class MeasurementController:
    """Drives sensor measurements for a multi-screen wizard.

    Threads:
        - reader: blocks on the serial port, frames and decodes lines,
          posts each Reading to the event queue
        - event worker: the only thread that mutates the measurement
          session, stored values and value slots; it runs readings,
          screen changes and timer firings one at a time

    Public methods are safe to call from any thread (e.g. HTTP handlers).
    """

    def __init__(
        self,
        config: Optional[WizardConfig] = None,
        transport: Optional[Transport] = None,
    ) -> None:
        """Initialize controller.

        Args:
            config: Wizard configuration. Defaults to WizardConfig().
            transport: Optional pre-configured Transport instance.
                      If None, connect() creates one.
        """
        self._config = config or WizardConfig()
        self._transport = transport
        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.Lock()

        # Single-consumer event queue
        self._events: "queue.Queue[Optional[Callable[[], None]]]" = queue.Queue()
        self._worker_thread: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()

        # Reader thread
        self._reader_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._framer = LineFramer()

        self._listeners: List[AcceptListener] = []
        self._ctx = SessionContext.create(
            config=self._config,
            get_transport=lambda: self._transport,
            scheduler=TimerScheduler(self._post),
            on_accept=self._notify_accept,
        )
        self._orchestrator = ScreenOrchestrator(self._ctx)

        # Store connection params for reconnection
        self._last_port: Optional[str] = None
        self._last_baud: int = protocol.DEFAULT_BAUD

        self._port_watcher: Optional[PortWatcher] = None

    # ========================================================================
    # Connection Management
    # ========================================================================

    def connect(
        self,
        port: Optional[str] = None,
        baud: int = protocol.DEFAULT_BAUD,
        serial_port: Optional[SerialLike] = None,
    ) -> None:
        """Open the serial link and start the read loop.

        Args:
            port: Serial port name (e.g., "/dev/ttyACM0"). Required if serial_port not given.
            baud: Baud rate. Default 115200.
            serial_port: Pre-configured serial port object (for testing). If provided,
                        port and baud are ignored.

        Raises:
            SerialIOError: If already connected or the port cannot be opened
        """
        with self._state_lock:
            if self._state == ConnectionState.CONNECTED:
                raise SerialIOError(f"Already connected (state: {self._state.value})")

            if self._transport is None or not self._transport.is_open:
                if serial_port is not None:
                    self._transport = Transport(serial_port)
                elif port is not None:
                    try:
                        self._transport = Transport.open(port, baud)
                    except SerialIOError as e:
                        logger.error(f"Connection failed: {e}")
                        self._ctx.display.set_status(f"Connection failed: {e}")
                        raise
                    self._last_port = port
                    self._last_baud = baud
                else:
                    raise ValueError("Must provide either 'port' or 'serial_port'")

            logger.info("Connecting to sensor box...")
            self._framer.reset()
            self._state = ConnectionState.CONNECTED
            self._start_reader_thread()
            self._ctx.display.set_status(STATUS_CONNECTED)
            logger.info("Connected")

    def disconnect(self) -> None:
        """Stop the read loop and close the port.

        Measurement state is left alone; a pending request simply fails
        to send until the next connect.
        """
        with self._state_lock:
            if self._state == ConnectionState.DISCONNECTED and self._transport is None:
                return

            logger.info("Disconnecting from sensor box...")
            self._stop_reader_thread()

            if self._transport:
                self._transport.close()
                self._transport = None

            self._state = ConnectionState.DISCONNECTED
            self._ctx.display.set_status(STATUS_DISCONNECTED)
            logger.info("Disconnected")

    def reconnect(self) -> None:
        """Reconnect using last known port/baud.

        Raises:
            SerialIOError: If no previous connection exists or reconnection fails
        """
        if self._last_port is None:
            raise SerialIOError("Cannot reconnect: no previous connection")

        logger.info(f"Reconnecting to {self._last_port} at {self._last_baud} baud...")
        self.disconnect()
        self.connect(port=self._last_port, baud=self._last_baud)

    def close(self) -> None:
        """Disconnect, stop the port watcher and shut down the event worker."""
        self.disconnect()
        self.stop_port_watcher()

        # Cancel any pending request timer before the worker goes away
        self._call(self._ctx.session.stop, wait=True)

        with self._worker_lock:
            if self._worker_thread and self._worker_thread.is_alive():
                self._events.put(None)
                self._worker_thread.join(timeout=EVENT_WAIT_TIMEOUT_S)
                if self._worker_thread.is_alive():
                    logger.warning("Event worker did not stop cleanly")
            self._worker_thread = None

    def is_connected(self) -> bool:
        """True if the port is open and the read loop is running."""
        return (
            self._transport is not None
            and self._transport.is_open
            and self._state == ConnectionState.CONNECTED
        )

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    # ========================================================================
    # Port Presence Events
    # ========================================================================

    def notify_port_event(self, kind: str, device: str = "") -> None:
        """Report a serial device being plugged in or removed.

        Only the status slot changes; measurement state is untouched.

        Args:
            kind: "connect" or "disconnect"
            device: Port name, for logging
        """
        if kind == "connect":
            logger.info(f"Serial port appeared: {device}")
            self._ctx.display.set_status(STATUS_PORT_AVAILABLE)
        elif kind == "disconnect":
            logger.info(f"Serial port removed: {device}")
            self._ctx.display.set_status(STATUS_DISCONNECTED)
        else:
            raise ValueError(f"kind must be 'connect' or 'disconnect', got {kind!r}")

    def start_port_watcher(self, interval_s: float = 1.0) -> None:
        """Poll the system port list and report changes to the status slot."""
        if self._port_watcher is None:
            self._port_watcher = PortWatcher(self.notify_port_event, interval_s=interval_s)
        self._port_watcher.start()

    def stop_port_watcher(self) -> None:
        if self._port_watcher is not None:
            self._port_watcher.stop()
            self._port_watcher = None

    # ========================================================================
    # Wizard Boundary
    # ========================================================================

    def on_screen_change(self, screen: int, wait: bool = True) -> Optional[SensorKey]:
        """Navigate the wizard to screen and start/stop measurement accordingly.

        Args:
            screen: Destination screen number (1-based)
            wait: Block until the event worker has applied the change

        Returns:
            Key measured on that screen (None if unmapped or wait=False)
        """
        logger.debug(f"Screen change requested: {screen}")
        return self._call(lambda: self._orchestrator.on_screen_change(screen), wait)

    def set_lock_on_first_valid(self, flag: bool, wait: bool = True) -> None:
        """Set whether measurements stop at the first in-range value.

        Applies from the next measurement start.
        """

        def apply() -> None:
            self._ctx.session.lock_on_first_valid = flag

        self._call(apply, wait)

    @property
    def lock_on_first_valid(self) -> bool:
        return self._ctx.session.lock_on_first_valid

    def flush_events(self, timeout_s: float = EVENT_WAIT_TIMEOUT_S) -> None:
        """Block until every event queued so far has been processed."""
        self._call(lambda: None, wait=True, timeout_s=timeout_s)

    def add_measurement_listener(self, listener: AcceptListener) -> None:
        """Register a callback run with (reading, text) for every accepted value.

        Runs on the event worker thread. Controller calls made from a
        listener run immediately, before the remaining events.
        """
        self._listeners.append(listener)

    # ========================================================================
    # Data Access
    # ========================================================================

    @property
    def status_text(self) -> str:
        return self._ctx.display.status

    def display_snapshot(self) -> Dict[str, str]:
        """Copy of all display slots, including the status slot."""
        return self._ctx.display.snapshot()

    def stored_values(self) -> Dict[str, str]:
        """Copy of every value accepted during this wizard session."""
        return self._ctx.stored_values.snapshot()

    @property
    def display(self) -> DisplayBoard:
        """Display board, for streaming updates."""
        return self._ctx.display

    @property
    def session_state(self) -> SessionState:
        return self._ctx.session.state

    @property
    def active_key(self) -> Optional[str]:
        return self._ctx.session.active_key

    @property
    def retry_count(self) -> int:
        return self._ctx.session.retry_count

    @property
    def current_screen(self) -> Optional[int]:
        return self._orchestrator.current_screen

    @property
    def progress_percent(self) -> float:
        return self._orchestrator.progress_percent

    @property
    def config(self) -> WizardConfig:
        return self._config

    # ========================================================================
    # Internal Helpers: Event Worker
    # ========================================================================

    def _post(self, fn: Callable[[], None]) -> None:
        self._ensure_worker()
        self._events.put(fn)

    def _call(
        self,
        fn: Callable[[], Any],
        wait: bool,
        timeout_s: float = EVENT_WAIT_TIMEOUT_S,
    ) -> Any:
        if threading.current_thread() is self._worker_thread:
            # Already inside an event (e.g. a listener); queued work would wait on itself
            return fn()

        future: "Future[Any]" = Future()

        def run() -> None:
            try:
                future.set_result(fn())
            except Exception as e:
                future.set_exception(e)
                raise

        self._post(run)
        if not wait:
            return None
        return future.result(timeout=timeout_s)

    def _ensure_worker(self) -> None:
        with self._worker_lock:
            if self._worker_thread and self._worker_thread.is_alive():
                return
            self._worker_thread = threading.Thread(
                target=self._worker_loop,
                name="MeasurementEvents",
                daemon=True,
            )
            self._worker_thread.start()
            logger.debug("Started event worker thread")

    def _worker_loop(self) -> None:
        logger.debug(f"Event worker started (thread {threading.get_ident()})")
        while True:
            fn = self._events.get()
            if fn is None:
                break
            try:
                fn()
            except Exception as e:
                # A bad event must not take the wizard down
                logger.error(f"Error handling measurement event: {e}", exc_info=True)
        logger.debug("Event worker stopped")

    def _notify_accept(self, reading: Reading, text: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(reading, text)
            except Exception as e:
                logger.error(f"Measurement listener failed: {e}", exc_info=True)

    # ========================================================================
    # Internal Helpers: Reader Thread
    # ========================================================================

    def _start_reader_thread(self) -> None:
        """Start background thread reading the serial stream."""
        self._stop_event.clear()
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            name="SerialReader",
            daemon=True,
        )
        self._reader_thread.start()
        logger.debug("Started serial reader thread")

    def _stop_reader_thread(self) -> None:
        """Stop and join reader thread if running."""
        self._stop_event.set()
        if self._reader_thread and self._reader_thread.is_alive():
            if self._reader_thread is not threading.current_thread():
                self._reader_thread.join(timeout=EVENT_WAIT_TIMEOUT_S)
                if self._reader_thread.is_alive():
                    logger.warning("Reader thread did not stop cleanly")
        self._reader_thread = None

    def _reader_loop(self) -> None:
        """Read chunks, frame lines, decode and hand readings to the event worker."""
        logger.info(f"Serial reader loop started (thread {threading.get_ident()})")
        transport = self._transport
        assert transport is not None

        while not self._stop_event.is_set():
            try:
                chunk = transport.read_chunk()
            except SerialIOError as e:
                if self._stop_event.is_set():
                    break
                logger.error(f"Serial read failed: {e}", exc_info=True)
                self._on_read_failure(transport)
                break

            for line in self._framer.feed(chunk):
                logger.debug(f"Received: {line!r}")
                reading = parsing.decode_line(line)
                if reading is not None:
                    self._post(lambda r=reading: self._orchestrator.handle_reading(r))

        logger.info("Serial reader loop stopped")

    def _on_read_failure(self, transport: Transport) -> None:
        # No state lock here: disconnect() holds it while joining this thread
        self._state = ConnectionState.READ_FAILED
        self._ctx.display.set_status(STATUS_READ_ERROR)
        try:
            transport.close()
        except Exception as e:
            logger.warning(f"Error closing port after read failure: {e}")
