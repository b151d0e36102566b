"""Tick history recording: CSV files and in-memory ring buffer."""

from pid_loopsim.logging.csv_logger import CSVLogger, TICK_COLUMNS
from pid_loopsim.logging.data_buffer import DataBuffer

__all__ = [
    "CSVLogger",
    "TICK_COLUMNS",
    "DataBuffer",
]
