"""
Tests for scenarios, batch simulation and performance metrics.
"""

import pytest
import numpy as np
import csv
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from pid_loopsim.core.pid_params import PIDPresets
from pid_loopsim.analyzer.metrics import PerformanceMetrics
from pid_loopsim.simulation.config import LoopConfig
from pid_loopsim.simulation.scenarios import (
    SimulationScenario,
    ScenarioLibrary,
    SetpointType,
    DisturbanceType,
)
from pid_loopsim.simulation.simulator import Simulator
from pid_loopsim.utils.validators import ValidationError


class TestScenarios:
    """Setpoint, disturbance and mode profiles."""

    def test_step(self):
        scenario = ScenarioLibrary.step_response()
        assert scenario.get_setpoint(0.0) == 50.0
        assert scenario.get_setpoint(0.99) == 50.0
        assert scenario.get_setpoint(1.0) == 70.0

    def test_ramp(self):
        scenario = ScenarioLibrary.ramp_tracking(initial=50.0, final=80.0, ramp_duration=30.0)
        assert scenario.get_setpoint(5.0) == 50.0
        assert scenario.get_setpoint(20.0) == pytest.approx(65.0)
        assert scenario.get_setpoint(60.0) == 80.0

    def test_sine(self):
        scenario = ScenarioLibrary.tracking_sine(amplitude=10.0, offset=50.0, frequency=0.02)
        assert scenario.get_setpoint(0.0) == pytest.approx(50.0)
        assert scenario.get_setpoint(12.5) == pytest.approx(60.0)

    def test_square(self):
        scenario = ScenarioLibrary.aggressive_setpoint_changes(low=40.0, high=60.0, period=40.0)
        assert scenario.get_setpoint(5.0) == 60.0
        assert scenario.get_setpoint(25.0) == 40.0

    def test_staircase(self):
        scenario = ScenarioLibrary.staircase_test(min_value=30.0, max_value=70.0, n_steps=5, duration=200.0)
        values = [scenario.get_setpoint(t) for t in (0.0, 40.0, 80.0, 120.0, 199.0)]
        assert values == [30.0, 40.0, 50.0, 60.0, 70.0]

    def test_custom(self):
        scenario = ScenarioLibrary.custom("Custom", 10.0, lambda t: 50.0 + t, lambda t: 2.0)
        assert scenario.setpoint_type is SetpointType.CUSTOM
        assert scenario.get_setpoint(3.0) == 53.0
        assert scenario.get_disturbance(3.0) == 2.0
        assert scenario.has_disturbance

    def test_disturbance_profiles(self):
        scenario = SimulationScenario(
            name="Pulse",
            duration=20.0,
            disturbance_type=DisturbanceType.PULSE,
            disturbance_magnitude=8.0,
            disturbance_time=5.0,
            disturbance_params={'pulse_duration': 2.0},
        )
        assert scenario.get_disturbance(4.9) == 0.0
        assert scenario.get_disturbance(6.0) == 8.0
        assert scenario.get_disturbance(7.0) == 0.0
        assert not ScenarioLibrary.step_response().has_disturbance

    def test_mode_events(self):
        scenario = SimulationScenario(
            name="Modes",
            duration=10.0,
            mode_events=[(6.0, True), (2.0, False)],
        )
        assert scenario.get_auto_mode(1.0) is None
        assert scenario.get_auto_mode(2.0) is False
        assert scenario.get_auto_mode(7.0) is True

    def test_invalid_duration(self):
        with pytest.raises(ValidationError):
            SimulationScenario(name="Bad", duration=0.0)


    def test_invalid_shape_parameters(self):
        with pytest.raises(ValidationError):
            SimulationScenario(name="Bad", duration=10.0, setpoint_type=SetpointType.RAMP,
                               setpoint_params={'ramp_duration': 0.0})
        with pytest.raises(ValidationError):
            SimulationScenario(name="Bad", duration=10.0, setpoint_type=SetpointType.CUSTOM)

class TestSimulator:
    """Batch runs through ControlLoop."""

    def test_step_response(self):
        sim = Simulator(LoopConfig())
        result = sim.run(ScenarioLibrary.step_response(duration=60.0))

        assert len(result) == 600
        assert result.timestamps[-1] == pytest.approx(60.0)
        assert result.setpoints[0] == 50.0
        assert result.setpoints[-1] == 70.0
        assert result.measurements[0] == pytest.approx(50.0)
        assert result.measurements[-1] == pytest.approx(70.0, abs=0.5)
        assert np.all((result.outputs >= 0.0) & (result.outputs <= 100.0))
        assert result.scenario_name == "Step Response"
        assert result.loop_config['controller']['ki'] == 0.1
        assert sim.last_result is result

    def test_analyze(self):
        sim = Simulator()
        result = sim.run(ScenarioLibrary.step_response())
        metrics = sim.analyze(result)

        assert set(metrics) == {'step_response', 'error', 'control_effort'}
        assert abs(metrics['step_response']['steady_state_error']) < 0.5
        assert metrics['step_response']['overshoot_percent'] < 5.0
        assert metrics['error']['iae'] > 0.0

    def test_speed_multiplier(self):
        sim = Simulator(LoopConfig(speed_multiplier=2.0))
        result = sim.run(ScenarioLibrary.step_response(duration=20.0))
        assert len(result) == 100
        assert result.timestamps[-1] == pytest.approx(20.0)

    def test_disturbance_profile_reproducible(self):
        scenario = ScenarioLibrary.step_with_disturbance(disturbance=5.0, duration=40.0)
        first = Simulator(seed=11).run(scenario)
        second = Simulator(seed=11).run(scenario)

        np.testing.assert_array_equal(first.measurements, second.measurements)
        assert first.disturbances[0] == 0.0
        assert first.disturbances[-1] == 5.0

    def test_manual_auto_transfer(self):
        result = Simulator().run(ScenarioLibrary.manual_auto_transfer(manual_at=10.0, auto_at=30.0))

        assert result.auto_modes[0]
        assert not result.auto_modes[150]
        assert result.auto_modes[-1]
        # MV held while in Manual
        manual = result.outputs[~result.auto_modes]
        assert np.all(manual == manual[0])

    def test_run_comparison(self):
        sim = Simulator()
        base = sim.config
        results = sim.run_comparison(
            ScenarioLibrary.step_response(duration=30.0),
            {'moderate': PIDPresets.moderate(), 'conservative': PIDPresets.conservative()},
        )

        assert set(results) == {'moderate', 'conservative'}
        assert results['conservative'].loop_config['controller']['kp'] == 0.5
        assert results['moderate'].scenario_name.endswith("moderate")
        assert sim.config is base

        comparison = sim.compare(results)
        assert set(comparison) == {'moderate', 'conservative'}

    def test_run_batch(self):
        sim = Simulator()
        results = sim.run_batch([
            ScenarioLibrary.step_response(duration=5.0),
            ScenarioLibrary.tracking_sine(duration=5.0),
        ])
        assert len(results) == 2
        assert len(sim.results) == 2
        sim.clear_results()
        assert sim.last_result is None

    def test_csv_log(self, tmp_path):
        path = tmp_path / "run.csv"
        Simulator(csv_log_path=str(path)).run(ScenarioLibrary.step_response(duration=3.0))

        with open(path, newline='') as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 30
        assert rows[-1]['tick'] == '30'

    def test_csv_log_keeps_every_run(self, tmp_path):
        """Batch runs append to the log instead of replacing it."""
        path = tmp_path / "batch.csv"
        path.write_text("stale\n")
        sim = Simulator(csv_log_path=str(path))
        sim.run_batch([
            ScenarioLibrary.step_response(duration=3.0),
            ScenarioLibrary.step_response(duration=2.0),
        ])

        with open(path, newline='') as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 50
        assert rows[29]['tick'] == '30'
        assert rows[30]['tick'] == '1'
        assert rows[-1]['tick'] == '20'


class TestPerformanceMetrics:
    """Metrics on synthetic signals."""

    def test_first_order_step(self):
        t = np.linspace(0.0, 50.0, 5001)
        y = 1.0 - np.exp(-t / 5.0)
        sp = np.ones_like(t)

        metrics = PerformanceMetrics().calculate_step_response_metrics(t, sp, y)

        assert metrics.rise_time == pytest.approx(5.0 * np.log(9.0), abs=0.05)
        assert metrics.settling_time_2pct == pytest.approx(5.0 * np.log(50.0), abs=0.05)
        assert metrics.overshoot_percent == 0.0

    def test_step_from_operating_point(self):
        """Bands are relative to the step, not to the final value."""
        t = np.linspace(0.0, 50.0, 5001)
        y = 50.0 + 20.0 * (1.0 - np.exp(-t / 5.0))
        sp = np.full_like(t, 70.0)

        metrics = PerformanceMetrics().calculate_step_response_metrics(t, sp, y)
        assert metrics.settling_time_5pct == pytest.approx(5.0 * np.log(20.0), abs=0.05)

    def test_overshoot(self):
        t = np.linspace(0.0, 10.0, 101)
        y = np.where(t <= 5.0, t / 5.0 * 1.2, 1.0)
        metrics = PerformanceMetrics().calculate_step_response_metrics(t, np.ones_like(t), y)
        assert metrics.overshoot_percent == pytest.approx(20.0)

    def test_times_measured_from_setpoint_change(self):
        """A step commanded at t = 10 s is timed from 10 s, not from the start."""
        t = np.linspace(0.0, 60.0, 6001)
        sp = np.where(t < 10.0, 50.0, 70.0)
        y = np.where(t < 10.0, 50.0, 50.0 + 20.0 * (1.0 - np.exp(-(t - 10.0) / 5.0)))

        metrics = PerformanceMetrics().calculate_step_response_metrics(t, sp, y)

        assert metrics.settling_time_5pct == pytest.approx(5.0 * np.log(20.0), abs=0.05)
        assert metrics.rise_time == pytest.approx(5.0 * np.log(9.0), abs=0.05)

    def test_falling_step(self):
        t = np.linspace(0.0, 10.0, 101)
        y = np.where(t <= 5.0, 1.0 - t / 5.0 * 1.1, 0.0)
        metrics = PerformanceMetrics().calculate_step_response_metrics(t, np.zeros_like(t), y)
        assert metrics.overshoot_percent == pytest.approx(10.0)
        assert metrics.undershoot_percent == 0.0

    def test_never_settles(self):
        t = np.linspace(0.0, 10.0, 101)
        y = 0.5 * t / 10.0
        metrics = PerformanceMetrics().calculate_step_response_metrics(t, np.ones_like(t), y)
        assert np.isnan(metrics.settling_time_2pct)
        assert np.isnan(metrics.rise_time)

    def test_error_metrics(self):
        t = np.linspace(0.0, 10.0, 101)
        sp = np.full_like(t, 3.0)
        pv = np.ones_like(t)

        metrics = PerformanceMetrics().calculate_error_metrics(t, sp, pv)

        assert metrics.iae == pytest.approx(20.0)
        assert metrics.ise == pytest.approx(40.0)
        assert metrics.mae == pytest.approx(2.0)
        assert metrics.rmse == pytest.approx(2.0)
        assert metrics.max_error == pytest.approx(2.0)

    def test_control_effort(self):
        t = np.arange(4.0)
        outputs = np.array([0.0, 100.0, 50.0, 50.0])
        metrics = PerformanceMetrics().calculate_control_effort_metrics(t, outputs, (0.0, 100.0))
        assert metrics.total_variation == 150.0
        assert metrics.saturation_time == 0.5

    def test_too_few_points(self):
        with pytest.raises(ValueError):
            PerformanceMetrics().calculate_error_metrics(np.zeros(1), np.zeros(1), np.zeros(1))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
