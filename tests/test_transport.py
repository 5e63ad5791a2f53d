"""Tests for the serial transport wrapper and port presence watcher."""

from types import SimpleNamespace
from typing import List

import pytest

from fakes.fake_serial import FakeSerial
from vitals_lib.errors import SerialIOError
from vitals_lib.transport import PortWatcher, Transport


class ChunkedPort:
    """SerialLike that hands out pre-split byte chunks."""

    def __init__(self, chunks: List[bytes]) -> None:
        self._chunks = list(chunks)
        self.is_open = True

    @property
    def in_waiting(self) -> int:
        return len(self._chunks[0]) if self._chunks else 0

    def read(self, size: int = 1) -> bytes:
        return self._chunks.pop(0) if self._chunks else b""

    def write(self, data: bytes) -> int:
        return len(data)

    def flush(self) -> None:
        pass

    def reset_input_buffer(self) -> None:
        self._chunks.clear()

    def close(self) -> None:
        self.is_open = False


def test_write_cmd_appends_lf() -> None:
    """Test that request tokens go out LF-terminated."""
    fake_serial = FakeSerial(auto_respond=False)
    transport = Transport(fake_serial)

    transport.write_cmd("HR_SPO2")
    transport.write_cmd("TEMP")

    assert fake_serial.commands == ["HR_SPO2", "TEMP"]


def test_read_chunk_returns_device_text() -> None:
    """Test reading a device answer."""
    fake_serial = FakeSerial(temp=36.5)
    transport = Transport(fake_serial)

    transport.write_cmd("TEMP")

    assert transport.read_chunk() == "TEMP:36.5\r\n"


def test_read_chunk_timeout_returns_empty() -> None:
    """Test that a read with no data returns an empty string."""
    transport = Transport(FakeSerial(timeout=0.01))

    assert transport.read_chunk() == ""


def test_multibyte_character_split_across_reads() -> None:
    """Test that a UTF-8 sequence split between reads is reassembled."""
    encoded = "T:36 °C\n".encode("utf-8")
    split = encoded.index("°".encode("utf-8")) + 1
    transport = Transport(ChunkedPort([encoded[:split], encoded[split:]]))

    text = transport.read_chunk() + transport.read_chunk()

    assert text == "T:36 °C\n"


def test_closed_port_raises() -> None:
    """Test that I/O on a closed port raises SerialIOError."""
    fake_serial = FakeSerial()
    transport = Transport(fake_serial)
    transport.close()

    assert not transport.is_open
    with pytest.raises(SerialIOError):
        transport.write_cmd("TEMP")
    with pytest.raises(SerialIOError):
        transport.read_chunk()
    with pytest.raises(SerialIOError):
        transport.flush_input()


def test_read_failure_wrapped() -> None:
    """Test that driver read errors surface as SerialIOError."""
    fake_serial = FakeSerial()
    fake_serial.fail_next_read()
    transport = Transport(fake_serial)

    with pytest.raises(SerialIOError):
        transport.read_chunk()


def test_flush_input_discards_pending() -> None:
    """Test that flush_input drops unread device output."""
    fake_serial = FakeSerial(timeout=0.01)
    transport = Transport(fake_serial)
    fake_serial.send_line("Booting sensor box")

    transport.flush_input()

    assert transport.read_chunk() == ""


def test_open_missing_port_raises() -> None:
    """Test that opening a non-existent device raises SerialIOError."""
    with pytest.raises(SerialIOError):
        Transport.open("/dev/does-not-exist-vitals", 115200)


def test_port_watcher_reports_changes() -> None:
    """Test connect/disconnect events from successive port listings."""
    listings = [
        [SimpleNamespace(device="/dev/ttyS0")],
        [SimpleNamespace(device="/dev/ttyS0"), SimpleNamespace(device="/dev/ttyACM0")],
        [SimpleNamespace(device="/dev/ttyS0")],
    ]
    events = []
    watcher = PortWatcher(
        lambda kind, device: events.append((kind, device)),
        enumerate_ports=lambda: listings.pop(0),
    )

    for _ in range(3):
        watcher.poll()

    assert events == [
        ("connect", "/dev/ttyS0"),
        ("connect", "/dev/ttyACM0"),
        ("disconnect", "/dev/ttyACM0"),
    ]
