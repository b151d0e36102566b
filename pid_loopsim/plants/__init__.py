"""Process models for the simulated loop."""

from pid_loopsim.plants.dead_time import DeadTimeBuffer, DelayedSample
from pid_loopsim.plants.first_order import FOPDTProcess
from pid_loopsim.plants.process_params import ProcessParams, ProcessKind, create_process

__all__ = [
    "DeadTimeBuffer",
    "DelayedSample",
    "FOPDTProcess",
    "ProcessParams",
    "ProcessKind",
    "create_process",
]
