#!/usr/bin/env python3
"""Watch raw traffic from the vitals sensor box and poke it with request tokens.

Bypasses the measurement session: opens the port through the library
Transport, sends each token given on the command line, then prints every
decoded line for a few seconds.

Usage:
    python tools/monitor_serial.py /dev/ttyACM0 HR_SPO2 TEMP
"""

import sys
import time

from vitals_lib import protocol
from vitals_lib.errors import SerialIOError
from vitals_lib.framing import LineFramer
from vitals_lib.parsing import decode_line
from vitals_lib.transport import Transport, list_serial_ports

LISTEN_S = 5.0


def show_ports():
    """Print the serial ports pyserial can see."""
    ports = list_serial_ports()
    print(f"Serial ports found: {len(ports)}")
    for p in ports:
        print(f"  {p.device:20} {getattr(p, 'description', '')}")


def monitor(port, tokens, baud=protocol.DEFAULT_BAUD):
    print(f"\n{'='*70}")
    print(f"Monitoring {port} at {baud} baud")
    print(f"{'='*70}\n")

    transport = Transport.open(port, baud)
    framer = LineFramer()

    try:
        transport.flush_input()

        for token in tokens:
            print(f"TX: {token!r}")
            transport.write_cmd(token)

        received = 0
        start = time.time()
        while time.time() - start < LISTEN_S:
            for line in framer.feed(transport.read_chunk()):
                received += 1
                reading = decode_line(line)
                if reading is None:
                    print(f"  RX: {line!r}  (ignored)")
                elif reading.is_error:
                    print(f"  RX: {line!r}  -> {reading.key} error sentinel")
                else:
                    print(f"  RX: {line!r}  -> {reading.key}={reading.value}")

        if not received:
            print("  ⚠️  No data received from sensor box!")
            print("  Check cable, power and baud rate.")
    finally:
        transport.close()
        print("\nPort closed.")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        show_ports()
        print(f"\nUsage: {sys.argv[0]} PORT [TOKEN ...]")
        sys.exit(1)

    try:
        monitor(sys.argv[1], sys.argv[2:])
    except SerialIOError as e:
        print(f"\n✗ {e}")
        sys.exit(2)
