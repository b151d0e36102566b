"""
Unit tests for process models.
"""

import pytest
import numpy as np
import control as ct
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from pid_loopsim.plants.dead_time import DeadTimeBuffer
from pid_loopsim.plants.first_order import FOPDTProcess
from pid_loopsim.plants.process_params import ProcessParams, ProcessKind, create_process
from pid_loopsim.utils.validators import ValidationError


class TestDeadTimeBuffer:
    """Test suite for the dead-time buffer."""

    @pytest.mark.parametrize("dead_time,sample_time,capacity", [
        (1.0, 0.1, 11),
        (0.25, 0.1, 4),
        (0.3, 0.1, 4),
        (0.0, 0.1, 1),
    ])
    def test_capacity(self, dead_time, sample_time, capacity):
        """Capacity is ceil(Td / dt) + 1."""
        assert DeadTimeBuffer(dead_time, sample_time).capacity == capacity

    def test_seed_fills_horizon(self):
        buf = DeadTimeBuffer(1.0, 0.1)
        buf.seed(value=42.0, now=0.0)

        samples = buf.samples()
        assert len(samples) == 10
        assert all(s.value == 42.0 for s in samples)
        assert samples[0].time == pytest.approx(-1.0)
        assert samples[-1].time == pytest.approx(-0.1)

    def test_lookup(self):
        buf = DeadTimeBuffer(dead_time=0.2, sample_time=0.1)
        buf.seed(value=5.0, now=0.0)
        buf.push(0.0, 7.0)

        assert buf.delayed_value(-0.2, default=7.0) == 5.0
        assert buf.delayed_value(0.0, default=9.0) == 7.0

    def test_default_when_nothing_old_enough(self):
        buf = DeadTimeBuffer(dead_time=0.5, sample_time=0.1)
        buf.push(1.0, 3.0)
        assert buf.delayed_value(0.5, default=8.0) == 8.0

    def test_zero_dead_time_returns_default(self):
        buf = DeadTimeBuffer(dead_time=0.0, sample_time=0.1)
        buf.push(0.0, 3.0)
        assert buf.delayed_value(0.0, default=8.0) == 8.0

    def test_memory_bounded(self):
        buf = DeadTimeBuffer(dead_time=0.5, sample_time=0.1)
        buf.seed(0.0, 0.0)
        for k in range(1000):
            buf.push(k * 0.1, float(k))
        assert len(buf) <= buf.capacity

    def test_configure_empties(self):
        buf = DeadTimeBuffer(1.0, 0.1)
        buf.seed(1.0, 0.0)
        buf.configure(2.0, 0.1)
        assert len(buf) == 0
        assert buf.capacity == 21

    def test_invalid_arguments(self):
        with pytest.raises(ValidationError):
            DeadTimeBuffer(1.0, 0.0)
        with pytest.raises(ValidationError):
            DeadTimeBuffer(-1.0, 0.1)


class TestFOPDTProcess:
    """Test suite for the first-order plus dead-time process."""

    def test_initialization(self):
        process = FOPDTProcess()
        assert process.gain == 1.0
        assert process.time_constant == 10.0
        assert process.dead_time == 1.0
        assert process.sample_time == 0.1
        assert process.disturbance == 0.0

    def test_steady_state_holds(self):
        """Initialized at Y = K*U, the output does not move."""
        process = FOPDTProcess(gain=1.0, time_constant=10.0, dead_time=1.0)
        process.initialize(initial_input=50.0, initial_output=50.0)

        for _ in range(200):
            assert process.update() == 50.0
        assert process.delayed_input == 50.0

    def test_dead_time_exactness(self):
        """With Td = n*dt the delayed input is the input from n ticks earlier."""
        n = 5
        process = FOPDTProcess(gain=1.0, time_constant=10.0, dead_time=n * 0.1, sample_time=0.1)
        process.initialize(initial_input=0.0, initial_output=0.0)

        inputs = [float(k + 1) for k in range(40)]
        for k, u in enumerate(inputs):
            process.input = u
            process.update()
            expected = inputs[k - n] if k >= n else 0.0
            assert process.delayed_input == expected, f"tick {k}"

    def test_dead_time_step(self):
        """A step in input reaches the output only after the dead time."""
        process = FOPDTProcess(gain=1.0, time_constant=5.0, dead_time=1.0, sample_time=0.1)
        process.initialize(20.0, 20.0)
        process.input = 30.0

        outputs = [process.update() for _ in range(20)]

        assert outputs[:10] == [20.0] * 10
        assert outputs[10] > 20.0

    def test_dead_time_with_short_steps(self):
        """Steps shorter than sample_time still delay the input by the full dead time."""
        process = FOPDTProcess(gain=1.0, time_constant=10.0, dead_time=1.0, sample_time=0.1)
        process.initialize(50.0, 50.0)
        process.input = 60.0

        delayed = []
        for _ in range(22):
            process.update(0.05)
            delayed.append(process.delayed_input)

        # Updates run at t = 0, 0.05, ..., 1.05; the step reaches U(t - Td) at t = 1.0
        assert delayed[:20] == [50.0] * 20
        assert delayed[20:] == [60.0, 60.0]

    def test_dead_time_with_irregular_steps(self):
        process = FOPDTProcess(gain=1.0, time_constant=10.0, dead_time=1.0, sample_time=0.1)
        process.initialize(0.0, 0.0)
        process.input = 10.0

        steps = [0.02, 0.3, 0.01, 0.07, 0.25, 0.05, 0.2]
        for step in steps:
            process.update(step)
            assert process.delayed_input == 0.0
        # t = 0.9 now
        process.update(0.1)
        assert process.delayed_input == 0.0
        process.update(0.1)
        assert process.delayed_input == 10.0

    def test_first_order_step_response(self):
        """Zero dead time follows Yss - (Yss - Y0) * exp(-t/tau) within Euler error."""
        gain, tau, dt = 2.0, 5.0, 0.01
        process = FOPDTProcess(gain=gain, time_constant=tau, dead_time=0.0, sample_time=dt)
        process.initialize(0.0, 0.0)
        process.input = 10.0

        n_steps = 1500
        outputs = np.array([process.update() for _ in range(n_steps)])
        t = dt * np.arange(1, n_steps + 1)
        analytic = gain * 10.0 * (1.0 - np.exp(-t / tau))

        assert np.max(np.abs(outputs - analytic)) < 0.05
        # One time constant: 63.2%
        assert outputs[499] == pytest.approx(0.632 * 20.0, abs=0.05)

    def test_negative_gain(self):
        process = FOPDTProcess(gain=-1.0, dead_time=0.0)
        process.initialize(0.0, 0.0)
        process.input = 10.0
        for _ in range(100):
            process.update()
        assert process.output < 0.0

    def test_parameter_clamping(self):
        """tau, Td and disturbance are clamped, not rejected."""
        process = FOPDTProcess(time_constant=0.0, dead_time=-1.0, disturbance=150.0)
        assert process.time_constant == 0.1
        assert process.dead_time == 0.0
        assert process.disturbance == 100.0

        process.disturbance = -5.0
        assert process.disturbance == 0.0
        process.time_constant = 0.01
        assert process.time_constant == 0.1

    def test_rejects_non_positive_step(self):
        with pytest.raises(ValidationError):
            FOPDTProcess(sample_time=0.0)

        process = FOPDTProcess()
        process.initialize(50.0, 50.0)
        with pytest.raises(ValidationError):
            process.update(dt=-0.1)
        with pytest.raises(ValidationError):
            process.sample_time = 0.0
        assert process.time == 0.0
        assert process.sample_time == 0.1

    def test_buffer_rebuild_on_dead_time_change(self):
        """Changing Td re-seeds the whole horizon with the current input."""
        process = FOPDTProcess(dead_time=1.0, sample_time=0.1)
        process.initialize(30.0, 30.0)

        process.dead_time = 2.0
        buf = process.dead_time_buffer
        assert buf.capacity == 21
        assert len(buf) == 20
        assert all(s.value == 30.0 for s in buf.samples())

        # No stale zero-valued history reaches the output
        for _ in range(30):
            assert process.update() == 30.0

    def test_buffer_rebuild_on_sample_time_change(self):
        process = FOPDTProcess(dead_time=1.0, sample_time=0.1)
        process.initialize(30.0, 30.0)
        process.sample_time = 0.2
        assert process.dead_time_buffer.capacity == 6

    def test_set_process_parameters(self):
        process = FOPDTProcess()
        process.set_process_parameters(2.0, 20.0, 3.0)
        assert (process.gain, process.time_constant, process.dead_time) == (2.0, 20.0, 3.0)

        with pytest.raises(ValidationError):
            process.set_process_parameters(1.0, float('nan'), 1.0)
        assert process.time_constant == 20.0

    def test_reset_keeps_operating_point(self):
        """Reset clears buffer and clock but keeps U and Y."""
        process = FOPDTProcess(dead_time=1.0)
        process.initialize(50.0, 50.0)
        process.input = 60.0
        for _ in range(30):
            process.update()
        output = process.output

        process.reset()

        assert process.output == output
        assert process.input == 60.0
        assert process.time == 0.0
        assert all(s.value == 60.0 for s in process.dead_time_buffer.samples())

    def test_disturbance_bounded(self):
        process = FOPDTProcess(disturbance=10.0, seed=1)
        process.initialize(50.0, 50.0)

        draws = []
        for _ in range(500):
            process.update()
            draws.append(process.last_disturbance)
        draws = np.array(draws)

        assert np.all(np.abs(draws) <= 0.1)
        assert np.any(draws > 0) and np.any(draws < 0)

    def test_disturbance_reproducible(self):
        """Same seed gives the same trajectory."""
        def run(seed):
            process = FOPDTProcess(disturbance=20.0, seed=seed)
            process.initialize(50.0, 50.0)
            return np.array([process.update() for _ in range(100)])

        np.testing.assert_array_equal(run(7), run(7))
        assert not np.array_equal(run(7), run(8))

    def test_no_disturbance_draws_nothing(self):
        process = FOPDTProcess(disturbance=0.0)
        process.initialize(50.0, 50.0)
        process.update()
        assert process.last_disturbance == 0.0

    def test_transfer_function(self):
        process = FOPDTProcess(gain=2.0, time_constant=5.0, dead_time=0.0)
        tf = process.transfer_function()
        assert isinstance(tf, ct.TransferFunction)
        assert float(np.real(ct.dcgain(tf))) == pytest.approx(2.0)

        process.dead_time = 1.0
        tf = process.transfer_function(pade_order=3)
        assert float(np.real(ct.dcgain(tf))) == pytest.approx(2.0)
        assert len(tf.poles()) == 4

    def test_tuning_suggestions(self):
        process = FOPDTProcess(gain=1.0, time_constant=10.0, dead_time=1.0)
        suggestions = process.tuning_suggestions()

        assert set(suggestions) == {'ziegler_nichols', 'cohen_coon', 'imc_aggressive', 'imc_conservative'}
        assert suggestions['ziegler_nichols']['kp'] == pytest.approx(12.0)
        for gains in suggestions.values():
            assert all(value >= 0 for value in gains.values())
        assert suggestions['imc_conservative']['kp'] < suggestions['imc_aggressive']['kp']

    def test_tuning_suggestions_zero_gain(self):
        assert FOPDTProcess(gain=0.0).tuning_suggestions() == {}

    def test_info(self):
        info = FOPDTProcess(gain=2.0).get_info()
        assert info['type'] == 'FOPDTProcess'
        assert info['gain'] == 2.0
        assert info['buffer_capacity'] == 11

    def test_state(self):
        process = FOPDTProcess(gain=2.0)
        assert process.steady_state_output(25.0) == 50.0
        process.initialize(25.0, 50.0)
        process.update()

        state = process.get_state()
        assert state['output'] == 50.0
        assert state['delayed_input'] == 25.0
        assert state['time'] == pytest.approx(0.1)


class TestProcessFactory:
    """Test suite for ProcessParams and create_process."""

    def test_params_clamping(self):
        params = ProcessParams(time_constant=-3.0, dead_time=-1.0, disturbance=500.0)
        assert params.time_constant == 0.1
        assert params.dead_time == 0.0
        assert params.disturbance == 100.0

    def test_params_reject_sample_time(self):
        with pytest.raises(ValidationError):
            ProcessParams(sample_time=0.0)

    def test_params_json(self):
        params = ProcessParams(gain=2.0, time_constant=4.0, dead_time=0.5)
        assert ProcessParams.from_json(params.to_json()) == params

    def test_create_default(self):
        process = create_process()
        assert isinstance(process, FOPDTProcess)
        assert process.dead_time == 1.0

    def test_create_first_order(self):
        """A pure first-order process has no dead time."""
        process = create_process(ProcessKind.FIRST_ORDER, ProcessParams(dead_time=3.0))
        assert process.dead_time == 0.0
        assert process.dead_time_buffer.capacity == 1

    def test_create_with_params(self):
        params = ProcessParams(gain=3.0, time_constant=7.0, dead_time=2.0, sample_time=0.5)
        process = create_process(ProcessKind.FIRST_ORDER_DEAD_TIME, params, seed=3)
        assert process.params == params

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            create_process("second_order")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
