"""Control loop orchestration, scenarios and batch simulation."""

from pid_loopsim.simulation.config import LoopConfig
from pid_loopsim.simulation.loop import ControlLoop, LoopSnapshot, LoopParameter
from pid_loopsim.simulation.scenarios import (
    SimulationScenario,
    ScenarioLibrary,
    SetpointType,
    DisturbanceType,
)
from pid_loopsim.simulation.simulator import Simulator, SimulationResult
from pid_loopsim.simulation.diagnostics import generate_report, save_report

__all__ = [
    "LoopConfig",
    "ControlLoop",
    "LoopSnapshot",
    "LoopParameter",
    "SimulationScenario",
    "ScenarioLibrary",
    "SetpointType",
    "DisturbanceType",
    "Simulator",
    "SimulationResult",
    "generate_report",
    "save_report",
]
