"""
Buffered CSV logging of control-loop ticks.

Features:
- Buffered writes so logging does not stall the tick
- Flush on buffer size or time interval
- Thread-safe operation
- Unwritten rows are kept when the file cannot be written
"""

from typing import List, Dict, Any, Optional, Sequence
from pathlib import Path
import csv
import time
import threading
from collections import deque


# Columns written for every loop tick
TICK_COLUMNS = [
    'tick', 'time', 'setpoint', 'process_variable', 'output', 'error',
    'p_term', 'i_term', 'd_term', 'integral_sum', 'auto_mode', 'saturated',
]


class CSVLogger:
    """
    CSV logger with buffering for per-tick loop data.

    Example:
        >>> logger = CSVLogger("loop.csv")
        >>> logger.log({"tick": 0, "time": 0.0, "setpoint": 50.0})
        >>> logger.close()
    """

    def __init__(
        self,
        file_path: str,
        columns: Optional[List[str]] = None,
        buffer_size: int = 100,
        flush_interval: float = 1.0,
        append: bool = False,
        float_format: Optional[str] = "{:.6g}",
    ):
        """
        Initialize CSV logger.

        Args:
            file_path: Path to CSV file
            columns: Column names (TICK_COLUMNS if None)
            buffer_size: Number of rows to buffer before writing
            flush_interval: Maximum seconds between flushes
            append: If True, append to existing file
            float_format: Format applied to float values (None writes repr)
        """
        columns = list(columns) if columns is not None else list(TICK_COLUMNS)
        if not columns:
            raise ValueError("columns cannot be empty")
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        if flush_interval <= 0:
            raise ValueError("flush_interval must be positive")

        self._file_path = Path(file_path)
        self._columns = columns
        self._buffer_size = buffer_size
        self._flush_interval = flush_interval
        self._float_format = float_format

        self._lock = threading.Lock()
        self._buffer: deque = deque()
        self._last_flush_time = time.monotonic()
        self._total_rows = 0

        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not append or not self._file_path.exists() or self._file_path.stat().st_size == 0

        self._file = open(self._file_path, 'a' if append else 'w', newline='')
        self._writer = csv.DictWriter(self._file, fieldnames=columns)
        if write_header:
            self._writer.writeheader()
            self._file.flush()

        self._closed = False

    def _format_row(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = {}
        for col in self._columns:
            value = data.get(col, '')
            if isinstance(value, bool):
                value = int(value)
            elif isinstance(value, float) and self._float_format is not None:
                value = self._float_format.format(value)
            row[col] = value
        return row

    def log(self, data: Dict[str, Any]) -> None:
        """
        Log a row of data.

        Args:
            data: Mapping of column names to values; missing columns are
                written empty, unknown keys are ignored
        """
        if self._closed:
            raise RuntimeError("Logger is closed")

        row = self._format_row(data)

        with self._lock:
            self._buffer.append(row)
            self._total_rows += 1
            should_flush = (
                len(self._buffer) >= self._buffer_size or
                time.monotonic() - self._last_flush_time >= self._flush_interval
            )

        if should_flush:
            self.flush()

    def log_batch(self, data_list: Sequence[Dict[str, Any]]) -> None:
        """Log several rows at once."""
        if self._closed:
            raise RuntimeError("Logger is closed")

        rows = [self._format_row(data) for data in data_list]

        with self._lock:
            self._buffer.extend(rows)
            self._total_rows += len(rows)
            should_flush = len(self._buffer) >= self._buffer_size

        if should_flush:
            self.flush()

    def flush(self) -> None:
        """Write buffered rows to disk."""
        with self._lock:
            if not self._buffer or self._closed:
                return
            rows_to_write = list(self._buffer)
            self._buffer.clear()
            self._last_flush_time = time.monotonic()

            try:
                self._writer.writerows(rows_to_write)
                self._file.flush()
            except OSError as e:
                self._buffer.extendleft(reversed(rows_to_write))
                raise RuntimeError(f"Failed to write to CSV: {e}") from e

    def close(self) -> None:
        """Flush remaining rows and close the file."""
        if self._closed:
            return

        self.flush()

        with self._lock:
            self._closed = True
            self._file.close()

    @property
    def file_path(self) -> Path:
        return self._file_path

    @property
    def columns(self) -> List[str]:
        return list(self._columns)

    @property
    def total_rows(self) -> int:
        """Rows logged so far, written or buffered."""
        return self._total_rows

    @property
    def buffer_count(self) -> int:
        """Rows waiting to be written."""
        return len(self._buffer)

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False
