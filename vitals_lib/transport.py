"""Serial transport layer for the vitals sensor box."""

import codecs
import logging
import threading
from typing import Any, Callable, List, Optional, Protocol, Set

from vitals_lib import protocol
from vitals_lib.errors import SerialIOError

logger = logging.getLogger(__name__)


class SerialLike(Protocol):
    """Protocol for serial port interface (allows test doubles)."""

    def write(self, data: bytes) -> int:
        """Write bytes to serial port."""
        ...

    def read(self, size: int = 1) -> bytes:
        """Read up to size bytes from serial port, honouring the port timeout."""
        ...

    def flush(self) -> None:
        """Flush output buffer (force transmission)."""
        ...

    def reset_input_buffer(self) -> None:
        """Flush input buffer."""
        ...

    def close(self) -> None:
        """Close serial port."""
        ...

    @property
    def in_waiting(self) -> int:
        """Number of bytes ready to read without blocking."""
        ...

    @property
    def is_open(self) -> bool:
        """Check if port is open."""
        ...


class Transport:
    """Wrapper around pyserial with protocol-specific helpers.

    Reads are chunk-oriented and decoded incrementally (a multi-byte
    character split across two reads is reassembled). Writes are
    serialized through a writer lock so a request token is never
    interleaved with another.
    """

    def __init__(self, serial_port: SerialLike) -> None:
        """Initialize transport with a serial port instance.

        Args:
            serial_port: Object implementing SerialLike protocol
                        (e.g., serial.Serial or FakeSerial for testing)
        """
        self._port = serial_port
        self._write_lock = threading.Lock()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @classmethod
    def open(
        cls,
        port: str,
        baud: int = protocol.DEFAULT_BAUD,
        timeout_s: float = protocol.READ_TIMEOUT_S,
    ) -> "Transport":
        """Open a real serial port (requires pyserial).

        Args:
            port: Serial port device name (e.g., "/dev/ttyACM0")
            baud: Baud rate. Default 115200 matches the sensor box firmware.
            timeout_s: Read timeout in seconds. Bounds how long a read blocks.

        Returns:
            Transport instance wrapping opened serial port

        Raises:
            SerialIOError: If port cannot be opened
        """
        import serial

        try:
            ser = serial.Serial(
                port=port,
                baudrate=baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout_s,
                rtscts=False,
                dsrdtr=False,
                xonxoff=False,
            )
            logger.info(f"Opened serial port {port} at {baud} baud, timeout={timeout_s}s")
            return cls(ser)
        except Exception as e:
            raise SerialIOError(f"Failed to open {port} at {baud} baud: {e}") from e

    def close(self) -> None:
        """Close the serial port."""
        if self._port.is_open:
            self._port.close()
            logger.info("Closed serial port")

    @property
    def is_open(self) -> bool:
        """Check if port is currently open."""
        return self._port.is_open

    def write_bytes(self, data: bytes) -> None:
        """Write raw bytes to port (no automatic termination).

        Args:
            data: Raw bytes to send

        Raises:
            SerialIOError: If port is closed or write fails
        """
        if not self._port.is_open:
            raise SerialIOError("Serial port is not open")

        with self._write_lock:
            try:
                sent = self._port.write(data)
                self._port.flush()
                logger.debug(f"Sent {sent} bytes: {data!r}")
            except Exception as e:
                raise SerialIOError(f"Failed to write to port: {e}") from e

    def write_cmd(self, text: str) -> None:
        """Write a request token terminated with LF.

        Args:
            text: Token (e.g., "HR_SPO2", "TEMP")

        Raises:
            SerialIOError: If write fails
        """
        data = (text + protocol.INPUT_TERMINATOR).encode("ascii")
        self.write_bytes(data)

    def read_chunk(self) -> str:
        """Read whatever the device has sent, blocking up to the port timeout.

        Returns:
            Decoded text, possibly empty on timeout. May end mid-line.

        Raises:
            SerialIOError: If port is closed or read fails
        """
        if not self._port.is_open:
            raise SerialIOError("Serial port is not open")

        try:
            size = min(max(self._port.in_waiting, 1), protocol.READ_CHUNK_MAX)
            data = self._port.read(size)
        except Exception as e:
            raise SerialIOError(f"Failed to read from port: {e}") from e

        if not data:
            return ""
        return self._decoder.decode(data)

    def flush_input(self) -> None:
        """Discard all pending input from device.

        Raises:
            SerialIOError: If port is closed
        """
        if not self._port.is_open:
            raise SerialIOError("Serial port is not open")

        try:
            self._port.reset_input_buffer()
            self._decoder.reset()
            logger.debug("Flushed input buffer")
        except Exception as e:
            raise SerialIOError(f"Failed to flush input: {e}") from e


def list_serial_ports() -> List[Any]:
    """List serial ports present on the system.

    Returns:
        pyserial ListPortInfo objects (device/description attributes)
    """
    import serial.tools.list_ports

    return list(serial.tools.list_ports.comports())


class PortWatcher:
    """Background thread reporting serial ports that appear or disappear.

    Calls ``on_event("connect" | "disconnect", device)`` on changes.
    Only reports; it never opens a port.
    """

    def __init__(
        self,
        on_event: Callable[[str, str], None],
        interval_s: float = 1.0,
        enumerate_ports: Callable[[], List[Any]] = list_serial_ports,
    ) -> None:
        self._on_event = on_event
        self._interval_s = interval_s
        self._enumerate = enumerate_ports
        self._known: Set[str] = set()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._known = self._devices()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="PortWatcher", daemon=True
        )
        self._thread.start()
        logger.debug(f"Port watcher started, known ports: {sorted(self._known)}")

    def stop(self) -> None:
        if self._thread and self._thread.is_alive():
            self._stop_event.set()
            self._thread.join(timeout=5.0)
        self._thread = None

    def poll(self) -> None:
        """Compare current ports with the last snapshot and emit events."""
        current = self._devices()
        for device in sorted(current - self._known):
            self._on_event("connect", device)
        for device in sorted(self._known - current):
            self._on_event("disconnect", device)
        self._known = current

    def _devices(self) -> Set[str]:
        return {p.device for p in self._enumerate()}

    def _run(self) -> None:
        while not self._stop_event.wait(timeout=self._interval_s):
            try:
                self.poll()
            except Exception as e:
                logger.error(f"Error in port watcher: {e}", exc_info=True)
