#!/usr/bin/env python3
"""
Basic Control Loop Demo

Demonstrates:
- Loop configuration (controller + FOPDT process)
- Setpoint step scenario
- CSV logging
- Performance metrics
"""

import logging
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pid_loopsim.core.pid_params import PIDParams, PIDAlgorithm
from pid_loopsim.plants.process_params import ProcessParams
from pid_loopsim.simulation.config import LoopConfig
from pid_loopsim.simulation.simulator import Simulator
from pid_loopsim.simulation.scenarios import ScenarioLibrary


def main():
    print("=" * 60)
    print("Basic Control Loop Demo")
    print("=" * 60)

    config = LoopConfig(
        controller=PIDParams(
            kp=1.0,            # Proportional gain
            ki=0.1,            # Integral gain
            kd=0.05,           # Derivative gain
            output_min=0.0,    # Output saturation limits
            output_max=100.0,
            algorithm=PIDAlgorithm.BASIC_PID,
        ),
        process=ProcessParams(
            gain=1.0,          # PV changes by 1x MV at steady state
            time_constant=10.0,
            dead_time=1.0,
        ),
        tick_duration=0.1,
    )

    print(f"\nController: {config.controller}")
    print(f"Process: {config.process.to_dict()}")

    sim = Simulator(config, csv_log_path="output/basic_demo.csv")

    scenario = ScenarioLibrary.step_response(initial=50.0, final=70.0, duration=60.0)

    print(f"\nRunning scenario: {scenario.name}")
    result = sim.run(scenario)

    print(f"Simulation completed in {result.execution_time:.3f}s")
    print(f"Final PV: {result.measurements[-1]:.2f}")
    print(f"Final error: {result.errors[-1]:.4f}")

    print("\n" + "=" * 60)
    print("Analysis Results")
    print("=" * 60)

    metrics = sim.analyze(result)

    step_metrics = metrics['step_response']
    print(f"\nStep Response Metrics:")
    print(f"  Rise Time: {step_metrics['rise_time']:.3f}s")
    print(f"  Settling Time (2%): {step_metrics['settling_time_2pct']:.3f}s")
    print(f"  Overshoot: {step_metrics['overshoot_percent']:.1f}%")
    print(f"  Steady-State Error: {step_metrics['steady_state_error']:.4f}")

    error_metrics = metrics['error']
    print(f"\nError Metrics:")
    print(f"  IAE: {error_metrics['iae']:.2f}")
    print(f"  ISE: {error_metrics['ise']:.2f}")
    print(f"  RMSE: {error_metrics['rmse']:.4f}")

    print("\nAlgorithm comparison (IAE):")
    param_sets = {
        algorithm.value: config.controller.copy(algorithm=algorithm)
        for algorithm in PIDAlgorithm
    }
    for name, metrics in sim.compare(sim.run_comparison(scenario, param_sets)).items():
        print(f"  {name:10s} {metrics['error']['iae']:8.2f}")

    print("\nTick log written to output/basic_demo.csv")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    # Create output directory
    Path("output").mkdir(exist_ok=True)
    main()
