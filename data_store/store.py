"""Thread-safe in-memory DataFrame of measurements accepted during a wizard session.

Rows are appended from the controller's event worker (measurement
listener) and read by the HTTP layer. Nothing is written to disk: the
log lives as long as the process.
"""

import logging
from threading import RLock
from typing import Callable, Optional

import pandas as pd

from data_store.schemas import SCHEMA, reading_to_row
from vitals_lib.models import Reading

logger = logging.getLogger(__name__)


class MeasurementLog:
    """Thread-safe pandas DataFrame of accepted measurements.

    Maintains a DataFrame with normalized schema (timestamp, key, value, display, screen).
    """

    def __init__(
        self,
        max_rows: int = 10000,
        screen_provider: Optional[Callable[[], Optional[int]]] = None,
    ) -> None:
        """Initialize empty log.

        Args:
            max_rows: Maximum rows to keep in memory. Older rows are trimmed after appends.
            screen_provider: Returns the current wizard screen, recorded with each row.
        """
        if max_rows <= 0:
            raise ValueError(f"max_rows must be positive, got {max_rows}")

        self._lock = RLock()
        self._df = pd.DataFrame(columns=list(SCHEMA.keys()))
        self._max_rows = max_rows
        self._screen_provider = screen_provider

    def record(self, reading: Reading, display: str) -> None:
        """Append one accepted measurement.

        Signature matches MeasurementController.add_measurement_listener.
        """
        screen = self._screen_provider() if self._screen_provider else None
        row = reading_to_row(reading, display, screen)

        with self._lock:
            new_df = pd.DataFrame([row], columns=list(SCHEMA.keys()))
            if self._df.empty:
                self._df = new_df
            else:
                self._df = pd.concat([self._df, new_df], ignore_index=True)

            if len(self._df) > self._max_rows:
                excess = len(self._df) - self._max_rows
                self._df = self._df.iloc[excess:].reset_index(drop=True)
                logger.debug(f"Trimmed {excess} oldest rows, now {len(self._df)} rows")

        logger.debug(f"Recorded {row['key']}={row['value']} ({display})")

    def get_dataframe(self) -> pd.DataFrame:
        """Get copy of entire DataFrame.

        Returns:
            Copy of internal DataFrame
        """
        with self._lock:
            return self._df.copy()

    def to_records(self, key: Optional[str] = None) -> list[dict]:
        """Rows as JSON-ready dictionaries, optionally filtered by key.

        NaN screen values become None.
        """
        with self._lock:
            df = self._df
            if key is not None:
                df = df[df["key"] == str(key)]
            df = df.astype(object).where(pd.notna(df), None)
            return df.to_dict(orient="records")

    def get_latest(self, key: Optional[str] = None) -> Optional[dict]:
        """Most recent row (for key, if given), or None."""
        records = self.to_records(key)
        return records[-1] if records else None

    def get_stats(self) -> dict:
        """Row count and per-key counts.

        Returns:
            {"row_count": int, "per_key": {key: count}}
        """
        with self._lock:
            if self._df.empty:
                return {"row_count": 0, "per_key": {}}
            counts = self._df.groupby("key").size()
            return {
                "row_count": len(self._df),
                "per_key": {str(k): int(v) for k, v in counts.items()},
            }

    def clear(self) -> None:
        """Remove all rows."""
        with self._lock:
            count = len(self._df)
            self._df = pd.DataFrame(columns=list(SCHEMA.keys()))
        logger.debug(f"Cleared {count} rows from measurement log")

    def __len__(self) -> int:
        with self._lock:
            return len(self._df)
