"""
In-memory ring buffer of recent loop ticks.
"""

from typing import List, Dict, Any, Optional, Sequence
from collections import deque
import csv
import threading
import numpy as np


class DataBuffer:
    """
    Bounded history of tick records.

    Keeps the most recent ``max_size`` rows so a display can plot a
    trailing window without unbounded memory growth.
    """

    def __init__(self, max_size: int = 10000, columns: Optional[List[str]] = None):
        """
        Initialize data buffer.

        Args:
            max_size: Maximum number of rows to store
            columns: Optional list of expected columns
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self._max_size = max_size
        self._columns = columns
        self._buffer: deque = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def append(self, data: Dict[str, Any]) -> None:
        """Add a row to the buffer."""
        with self._lock:
            self._buffer.append(dict(data))

    def extend(self, data_list: Sequence[Dict[str, Any]]) -> None:
        """Add multiple rows to the buffer."""
        with self._lock:
            self._buffer.extend(dict(data) for data in data_list)

    def get_all(self) -> List[Dict[str, Any]]:
        """Get all buffered rows, oldest first."""
        with self._lock:
            return list(self._buffer)

    def get_last(self, n: int) -> List[Dict[str, Any]]:
        """Get the last n rows."""
        with self._lock:
            if n <= 0:
                return []
            return list(self._buffer)[-n:]

    def get_column(self, column: str) -> np.ndarray:
        """All values of one column as a float array (NaN where missing)."""
        with self._lock:
            values = [row.get(column, np.nan) for row in self._buffer]
        return np.asarray(values, dtype=float)

    def to_arrays(self) -> Dict[str, np.ndarray]:
        """Every column as a float array."""
        columns = self._columns
        if columns is None:
            rows = self.get_all()
            columns = list(rows[0].keys()) if rows else []
        return {col: self.get_column(col) for col in columns}

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def is_full(self) -> bool:
        """Check if buffer is at max capacity."""
        return len(self._buffer) >= self._max_size

    def to_csv(self, file_path: str) -> None:
        """
        Export buffer contents to a CSV file.

        Args:
            file_path: Output file path
        """
        data = self.get_all()
        if not data:
            return

        columns = self._columns or list(data[0].keys())

        with open(file_path, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=columns, extrasaction='ignore')
            writer.writeheader()
            writer.writerows(data)
