"""Fake serial port that simulates the vitals sensor box firmware.

Behaviour emulated:
- LF-terminated request tokens from the host (HR_SPO2, ALTURA, TEMP, GSR)
- Height answered under its firmware name, ALTURA:<cm>
- KEY:VALUE answers terminated with CRLF
- HR_SPO2 answered with two independent lines (HR then SPO2)
- NA/OUT error sentinels and arbitrary noise via scripted responses
- Read timeouts, like pyserial with ``timeout`` set
"""

import logging
import threading
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

Response = Union[str, Iterable[str]]


class FakeSerial:
    """Deterministic simulator of the sensor box.

    Each request token is answered from its script queue if one was set
    with ``script()``, otherwise with the current default readings.
    """

    def __init__(
        self,
        hr: float = 72,
        spo2: float = 98,
        temp: float = 36.5,
        gsr: float = 512,
        height: float = 172.5,
        line_ending: str = "\r\n",
        auto_respond: bool = True,
        timeout: float = 0.05,
    ) -> None:
        """Initialize fake sensor box.

        Args:
            hr, spo2, temp, gsr, height: Default values reported
            line_ending: Terminator used for device output
            auto_respond: If False, requests are recorded but never answered
            timeout: Read timeout in seconds (pyserial semantics)
        """
        self.values: Dict[str, float] = {
            "HR": hr,
            "SPO2": spo2,
            "TEMP": temp,
            "GSR": gsr,
            "HEIGHT": height,
        }
        self.line_ending = line_ending
        self.auto_respond = auto_respond
        self.timeout = timeout

        # Requests received from host, in order
        self.commands: List[str] = []

        self._scripts: Dict[str, Deque[List[str]]] = defaultdict(deque)
        self._input_buffer = bytearray()
        self._output = bytearray()
        self._cond = threading.Condition()
        self._read_error: Optional[Exception] = None

        self.is_open = True

    # ========================================================================
    # SerialLike interface
    # ========================================================================

    def close(self) -> None:
        """Close the fake serial port."""
        with self._cond:
            self.is_open = False
            self._cond.notify_all()
        logger.debug("FakeSerial closed")

    def write(self, data: bytes) -> int:
        """Receive bytes from the host; complete LF-terminated tokens are answered."""
        if not self.is_open:
            raise RuntimeError("Port is closed")

        self._input_buffer.extend(data)
        logger.debug(f"FakeSerial received: {data!r}")

        while b"\n" in self._input_buffer:
            idx = self._input_buffer.index(b"\n")
            token = bytes(self._input_buffer[:idx]).decode("ascii", errors="ignore").strip()
            del self._input_buffer[: idx + 1]
            if token:
                self._handle_command(token)

        return len(data)

    def read(self, size: int = 1) -> bytes:
        """Return up to size bytes, waiting at most ``timeout`` for data."""
        with self._cond:
            if not self.is_open:
                raise RuntimeError("Port is closed")

            if self._read_error is not None:
                error, self._read_error = self._read_error, None
                raise error

            if not self._output:
                self._cond.wait(timeout=self.timeout)
                if not self.is_open:
                    raise RuntimeError("Port is closed")

            data = bytes(self._output[:size])
            del self._output[:size]
            return data

    @property
    def in_waiting(self) -> int:
        with self._cond:
            return len(self._output)

    def flush(self) -> None:
        """Flush output buffer (no-op for fake serial)."""
        pass

    def reset_input_buffer(self) -> None:
        """Discard pending device output."""
        with self._cond:
            self._output.clear()
        logger.debug("FakeSerial input buffer flushed")

    # ========================================================================
    # Test controls
    # ========================================================================

    def script(self, token: str, *responses: Response) -> None:
        """Queue answers for the next requests of token.

        Each response is one line or a list of lines sent for one request.
        An empty list means the request is ignored.

        Example:
            fake.script("TEMP", "TEMP:NA", "TEMP:36.8")
        """
        for response in responses:
            lines = [response] if isinstance(response, str) else list(response)
            self._scripts[token].append(lines)

    def inject(self, text: str) -> None:
        """Push raw text to the host as if the device had sent it."""
        with self._cond:
            self._output.extend(text.encode("utf-8"))
            self._cond.notify_all()

    def send_line(self, line: str) -> None:
        self.inject(line + self.line_ending)

    def fail_next_read(self, error: Optional[Exception] = None) -> None:
        """Make the next read() raise, like a USB cable being pulled."""
        with self._cond:
            self._read_error = error or OSError("device reports readiness to read but returned no data")
            self._cond.notify_all()

    def wait_for_commands(self, count: int, timeout: float = 2.0) -> bool:
        """Wait until at least count requests were received."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if len(self.commands) >= count:
                return True
            time.sleep(0.005)
        return len(self.commands) >= count

    # ========================================================================
    # Internal: Command Handling
    # ========================================================================

    def _handle_command(self, token: str) -> None:
        self.commands.append(token)
        if not self.auto_respond:
            return

        if self._scripts[token]:
            lines = self._scripts[token].popleft()
        else:
            lines = self._default_response(token)

        for line in lines:
            self.send_line(line)

    def _default_response(self, token: str) -> List[str]:
        if token == "HR_SPO2":
            return [f"HR:{self.values['HR']}", f"SPO2:{self.values['SPO2']}"]
        if token == "ALTURA":
            return [f"ALTURA:{self.values['HEIGHT']}"]
        if token in ("TEMP", "GSR"):
            return [f"{token}:{self.values[token]}"]
        return [f"Unknown command {token}"]
