"""Core PID controller components."""

from pid_loopsim.core.pid_controller import PIDController, PIDState, ControllerClosedError
from pid_loopsim.core.pid_params import PIDParams, PIDAlgorithm, ControllerMode, PIDPresets

__all__ = [
    "PIDController",
    "PIDState",
    "ControllerClosedError",
    "PIDParams",
    "PIDAlgorithm",
    "ControllerMode",
    "PIDPresets",
]
