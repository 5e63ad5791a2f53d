"""Session context: the single owner of all mutable wizard measurement state."""

from dataclasses import dataclass
from typing import Callable, Optional

from vitals_lib.config import WizardConfig
from vitals_lib.dispatcher import CommandDispatcher
from vitals_lib.display import DisplayBoard, StoredValues
from vitals_lib.scheduler import Scheduler
from vitals_lib.session import AcceptListener, MeasurementSession
from vitals_lib.transport import Transport


@dataclass
class SessionContext:
    """Everything the orchestrator and read loop mutate, owned in one place.

    One context exists per controller; it is handed explicitly to the
    collaborators that need it instead of living in module globals.
    """

    config: WizardConfig
    display: DisplayBoard
    stored_values: StoredValues
    dispatcher: CommandDispatcher
    session: MeasurementSession

    @classmethod
    def create(
        cls,
        config: WizardConfig,
        get_transport: Callable[[], Optional[Transport]],
        scheduler: Scheduler,
        on_accept: Optional[AcceptListener] = None,
        display: Optional[DisplayBoard] = None,
    ) -> "SessionContext":
        """Wire a fresh context.

        Args:
            config: Wizard configuration
            get_transport: Returns the current transport (None when disconnected)
            scheduler: Runs deferred requests
            on_accept: Called with (reading, text) for every accepted value
            display: Existing board to reuse. A new one is created if None.
        """
        display = display or DisplayBoard()
        stored_values = StoredValues()
        dispatcher = CommandDispatcher(get_transport, display)
        session = MeasurementSession(
            config=config,
            dispatcher=dispatcher,
            display=display,
            stored_values=stored_values,
            scheduler=scheduler,
            on_accept=on_accept,
        )
        return cls(
            config=config,
            display=display,
            stored_values=stored_values,
            dispatcher=dispatcher,
            session=session,
        )
