"""DataFrame log of measurements accepted during a wizard session."""

from data_store.schemas import SCHEMA, reading_to_row
from data_store.store import MeasurementLog

__all__ = ["SCHEMA", "reading_to_row", "MeasurementLog"]
