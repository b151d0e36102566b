"""
PID Loop Simulator
==================

A closed-loop simulator of a PID controller driving a first-order plus
dead-time process:
- PID controller with Basic PID, I-PD and PI-D algorithms
- Anti-windup, output clamping and bumpless Manual/Automatic transfer
- FOPDT process with time-stamped dead-time buffer and random disturbance
- Thread-safe loop orchestration with CSV and in-memory tick history
- Scenario-driven batch simulation and performance metrics
"""

from pid_loopsim.core.pid_controller import PIDController
from pid_loopsim.core.pid_params import PIDParams, PIDAlgorithm, ControllerMode
from pid_loopsim.plants.first_order import FOPDTProcess
from pid_loopsim.plants.process_params import ProcessParams, ProcessKind
from pid_loopsim.simulation.config import LoopConfig
from pid_loopsim.simulation.loop import ControlLoop, LoopParameter
from pid_loopsim.simulation.simulator import Simulator

__version__ = "1.0.0"
__all__ = [
    "PIDController",
    "PIDParams",
    "PIDAlgorithm",
    "ControllerMode",
    "FOPDTProcess",
    "ProcessParams",
    "ProcessKind",
    "LoopConfig",
    "ControlLoop",
    "LoopParameter",
    "Simulator",
]
