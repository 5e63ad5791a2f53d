"""Maps sensor keys to request tokens and writes them to the transport."""

import logging
from typing import Callable, Optional, Tuple

from vitals_lib import protocol
from vitals_lib.display import DisplayBoard
from vitals_lib.errors import SerialIOError
from vitals_lib.models import SensorKey
from vitals_lib.transport import Transport

logger = logging.getLogger(__name__)

STATUS_PORT_UNAVAILABLE = "Port not available for writing"
STATUS_SEND_FAILED = "Error sending command"


def keys_sharing_command(key: str) -> Tuple[SensorKey, ...]:
    """Other keys answered by the same request as key (the combined request)."""
    token = protocol.command_for_key(key)
    if token is None:
        return ()
    return tuple(k for k in protocol.keys_for_command(token) if k != key)


class CommandDispatcher:
    """Sends the request token for a sensor key.

    Transport problems are reported through the status slot and never
    raised: the user recovers by reconnecting or re-navigating.
    """

    def __init__(
        self,
        get_transport: Callable[[], Optional[Transport]],
        display: DisplayBoard,
    ) -> None:
        """Initialize dispatcher.

        Args:
            get_transport: Returns the current transport, or None if disconnected
            display: Board whose status slot receives write failures
        """
        self._get_transport = get_transport
        self._display = display

    def send_command_for_key(self, key: str) -> bool:
        """Write the request token for key followed by LF.

        Args:
            key: Sensor key to request

        Returns:
            True if the token was written
        """
        token = protocol.command_for_key(key)
        if token is None:
            logger.debug(f"No request token for {key}, waiting for unsolicited reading")
            return False

        transport = self._get_transport()
        if transport is None or not transport.is_open:
            logger.warning(f"Port not available for writing, {token} not sent")
            self._display.set_status(STATUS_PORT_UNAVAILABLE)
            return False

        try:
            transport.write_cmd(token)
        except SerialIOError as e:
            logger.warning(f"Failed to send command {token}: {e}")
            self._display.set_status(STATUS_SEND_FAILED)
            return False

        logger.info(f"Command sent: {token}")
        return True
