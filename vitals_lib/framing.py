"""Line framing for the decoded serial text stream."""

import logging
from typing import List

from vitals_lib import protocol

logger = logging.getLogger(__name__)


class LineFramer:
    """Reassembles complete lines from arbitrarily split text chunks.

    A chunk may end mid-line; the fragment is carried over and prefixed
    to the next chunk, so the output never depends on where the serial
    driver happened to split the stream.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> List[str]:
        """Append a chunk and return every complete, non-empty, trimmed line.

        Args:
            chunk: Decoded text as received from the transport

        Returns:
            Lines in arrival order (may be empty)
        """
        if not chunk:
            return []

        self._buffer += chunk
        parts = protocol.RE_LINE_SPLIT.split(self._buffer)

        # Last element is the incomplete fragment (empty if chunk ended on LF).
        # A lone trailing CR stays in it until its LF arrives.
        self._buffer = parts.pop()

        lines = [p.strip() for p in parts]
        return [line for line in lines if line]

    def reset(self) -> None:
        """Discard any buffered partial line."""
        if self._buffer:
            logger.debug(f"Discarding partial line: {self._buffer!r}")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Incomplete fragment waiting for its terminator."""
        return self._buffer
