"""
Batch simulation of control loops.
Runs scenarios tick by tick and collects the trajectories as numpy arrays.
"""

from typing import Dict, Any, List, Optional
from dataclasses import dataclass
import logging
import time
import numpy as np

from pid_loopsim.core.pid_params import PIDParams
from pid_loopsim.plants.process_params import ProcessKind
from pid_loopsim.simulation.config import LoopConfig
from pid_loopsim.simulation.loop import ControlLoop
from pid_loopsim.simulation.scenarios import SimulationScenario
from pid_loopsim.analyzer.metrics import PerformanceMetrics

logger = logging.getLogger(__name__)


@dataclass
class SimulationResult:
    """Container for simulation results."""
    timestamps: np.ndarray
    setpoints: np.ndarray
    measurements: np.ndarray
    outputs: np.ndarray
    errors: np.ndarray
    p_terms: np.ndarray
    i_terms: np.ndarray
    d_terms: np.ndarray
    disturbances: np.ndarray
    auto_modes: np.ndarray

    # Metadata
    scenario_name: str = ""
    loop_config: Optional[Dict[str, Any]] = None
    process_info: Optional[Dict[str, Any]] = None
    execution_time: float = 0.0

    def to_dict(self) -> Dict[str, np.ndarray]:
        """Convert to dictionary format."""
        return {
            'time': self.timestamps,
            'setpoint': self.setpoints,
            'process_variable': self.measurements,
            'output': self.outputs,
            'error': self.errors,
            'p_term': self.p_terms,
            'i_term': self.i_terms,
            'd_term': self.d_terms,
            'disturbance': self.disturbances,
            'auto_mode': self.auto_modes,
        }

    def __len__(self) -> int:
        return len(self.timestamps)


class Simulator:
    """
    Control loop simulation engine.

    Each run builds a fresh ControlLoop from the configuration, initializes
    it at the scenario's initial setpoint and drives it through the
    scenario's profiles.

    Example:
        >>> sim = Simulator(LoopConfig())
        >>> result = sim.run(ScenarioLibrary.step_response())
        >>> metrics = sim.analyze(result)
    """

    def __init__(
        self,
        config: Optional[LoopConfig] = None,
        kind: ProcessKind = ProcessKind.FIRST_ORDER_DEAD_TIME,
        seed: Optional[int] = None,
        csv_log_path: Optional[str] = None
    ):
        """
        Initialize simulator.

        Args:
            config: Loop configuration (defaults if None)
            kind: Process shape
            seed: Seed for the process disturbance, reused for every run
            csv_log_path: Optional path for CSV logging; the first run replaces
                the file and later runs append to it, each starting at tick 1
        """
        self._config = config if config is not None else LoopConfig()
        self._kind = kind
        self._seed = seed
        self._csv_path = csv_log_path
        self._csv_runs = 0

        self._results: List[SimulationResult] = []
        self._metrics = PerformanceMetrics()

    def run(
        self,
        scenario: SimulationScenario,
        operating_point: Optional[float] = None
    ) -> SimulationResult:
        """
        Run a simulation scenario.

        Args:
            scenario: Simulation scenario to run
            operating_point: PV to start from (scenario's initial setpoint if None)

        Returns:
            SimulationResult containing all data
        """
        start_time = time.perf_counter()

        config = self._config.copy(tick_duration=scenario.tick_duration)
        if operating_point is None:
            operating_point = scenario.get_setpoint(0.0)

        csv_append = self._csv_runs > 0
        if self._csv_path is not None:
            self._csv_runs += 1

        with ControlLoop(config, kind=self._kind, seed=self._seed, csv_path=self._csv_path,
                         csv_append=csv_append, name=scenario.name) as loop:
            loop.initialize(operating_point)

            n_steps = max(1, int(round(scenario.duration / loop.effective_step)))

            timestamps = np.zeros(n_steps)
            setpoints = np.zeros(n_steps)
            measurements = np.zeros(n_steps)
            outputs = np.zeros(n_steps)
            errors = np.zeros(n_steps)
            p_terms = np.zeros(n_steps)
            i_terms = np.zeros(n_steps)
            d_terms = np.zeros(n_steps)
            disturbances = np.zeros(n_steps)
            auto_modes = np.zeros(n_steps, dtype=bool)

            for i in range(n_steps):
                t = loop.time

                auto_mode = scenario.get_auto_mode(t)
                if auto_mode is not None and auto_mode != loop.auto_mode:
                    loop.auto_mode = auto_mode

                loop.setpoint = scenario.get_setpoint(t)
                if scenario.has_disturbance:
                    loop.disturbance = scenario.get_disturbance(t)

                snapshot = loop.tick()

                timestamps[i] = snapshot.time
                setpoints[i] = snapshot.setpoint
                measurements[i] = snapshot.process_variable
                outputs[i] = snapshot.output
                errors[i] = snapshot.error
                p_terms[i] = snapshot.p_term
                i_terms[i] = snapshot.i_term
                d_terms[i] = snapshot.d_term
                disturbances[i] = loop.disturbance
                auto_modes[i] = snapshot.auto_mode

            process_info = loop.process_info()

        execution_time = time.perf_counter() - start_time
        logger.info("Scenario '%s': %d ticks in %.3fs", scenario.name, n_steps, execution_time)

        result = SimulationResult(
            timestamps=timestamps,
            setpoints=setpoints,
            measurements=measurements,
            outputs=outputs,
            errors=errors,
            p_terms=p_terms,
            i_terms=i_terms,
            d_terms=d_terms,
            disturbances=disturbances,
            auto_modes=auto_modes,
            scenario_name=scenario.name,
            loop_config=config.to_dict(),
            process_info=process_info,
            execution_time=execution_time
        )

        self._results.append(result)
        return result

    def run_comparison(
        self,
        scenario: SimulationScenario,
        param_sets: Dict[str, PIDParams]
    ) -> Dict[str, SimulationResult]:
        """
        Run one scenario with several controller tunings.

        Args:
            scenario: Simulation scenario
            param_sets: Dictionary mapping names to parameter sets

        Returns:
            Dictionary mapping names to results
        """
        base_config = self._config
        results = {}
        try:
            for name, params in param_sets.items():
                self._config = base_config.copy(controller=params)
                result = self.run(scenario)
                result.scenario_name = f"{scenario.name} - {name}"
                results[name] = result
        finally:
            self._config = base_config
        return results

    def run_batch(
        self,
        scenarios: List[SimulationScenario]
    ) -> List[SimulationResult]:
        """Run multiple scenarios."""
        return [self.run(scenario) for scenario in scenarios]

    def analyze(self, result: SimulationResult) -> Dict[str, Any]:
        """
        Analyze simulation result.

        Args:
            result: Simulation result to analyze

        Returns:
            Metrics dictionary (step response, error, control effort)
        """
        controller = (result.loop_config or {}).get('controller', self._config.controller.to_dict())
        return self._metrics.calculate_all_metrics(
            result.timestamps,
            result.setpoints,
            result.measurements,
            result.outputs,
            output_limits=(controller['output_min'], controller['output_max'])
        )

    def compare(self, results: Dict[str, SimulationResult]) -> Dict[str, Dict[str, Any]]:
        """Analyze several results, keyed like the input."""
        return {name: self.analyze(result) for name, result in results.items()}

    def set_config(self, config: LoopConfig) -> None:
        """Update loop configuration."""
        self._config = config

    @property
    def config(self) -> LoopConfig:
        return self._config

    @property
    def results(self) -> List[SimulationResult]:
        """Get all simulation results."""
        return self._results

    @property
    def last_result(self) -> Optional[SimulationResult]:
        """Get most recent result."""
        return self._results[-1] if self._results else None

    def clear_results(self) -> None:
        """Clear stored results."""
        self._results.clear()
