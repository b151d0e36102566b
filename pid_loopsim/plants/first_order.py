"""
First-order plus dead-time (FOPDT) process model.
Transfer function: G(s) = K * exp(-Td*s) / (tau*s + 1)
"""

from typing import Dict, Any, Optional
import logging
import threading
import numpy as np
import control as ct

from pid_loopsim.plants.dead_time import DeadTimeBuffer
from pid_loopsim.plants.process_params import (
    ProcessParams,
    MIN_TIME_CONSTANT,
    DISTURBANCE_MIN,
    DISTURBANCE_MAX,
)
from pid_loopsim.utils.math_utils import clamp, is_negligible
from pid_loopsim.utils.validators import validate_positive, validate_real

logger = logging.getLogger(__name__)


class FOPDTProcess:
    """
    First-Order Plus Dead Time process with random output disturbance.

    Each ``update`` takes one explicit Euler step of
    dY/dt = (K * U(t - Td) - Y) / tau and then adds a bipolar random
    disturbance of at most ``disturbance / 100`` directly to Y.

    Where:
        - K: Process gain
        - tau: Time constant (clamped to >= 0.1 s)
        - Td: Dead time (clamped to >= 0)

    Example:
        >>> process = FOPDTProcess(gain=1.0, time_constant=10.0, dead_time=1.0)
        >>> process.initialize(initial_input=50.0, initial_output=50.0)
        >>> process.input = 60.0
        >>> pv = process.update()
    """

    def __init__(
        self,
        gain: float = 1.0,
        time_constant: float = 10.0,
        dead_time: float = 1.0,
        sample_time: float = 0.1,
        disturbance: float = 0.0,
        seed: Optional[int] = None,
        name: str = "Process",
    ):
        """
        Initialize FOPDT process.

        Args:
            gain: Process gain K
            time_constant: Time constant tau in seconds
            dead_time: Dead time Td in seconds
            sample_time: Euler step in seconds (must be positive)
            disturbance: Disturbance factor in percent (0-100)
            seed: Seed for the disturbance random source
            name: Display name used in log messages
        """
        self._name = name
        self._lock = threading.RLock()

        self._K = validate_real(gain, "gain")
        self._tau = max(MIN_TIME_CONSTANT, validate_real(time_constant, "time_constant"))
        self._Td = max(0.0, validate_real(dead_time, "dead_time"))
        self._dt = validate_positive(sample_time, "sample_time")
        self._disturbance = clamp(
            validate_real(disturbance, "disturbance"), DISTURBANCE_MIN, DISTURBANCE_MAX
        )

        self._input: float = 0.0
        self._output: float = 0.0
        self._time: float = 0.0
        self._delayed_input: float = 0.0
        self._last_disturbance: float = 0.0

        self._rng = np.random.default_rng(seed)
        self._buffer = DeadTimeBuffer(self._Td, self._dt)
        self._buffer.seed(self._input, self._time)

    @classmethod
    def from_params(cls, params: ProcessParams, seed: Optional[int] = None, name: str = "Process") -> 'FOPDTProcess':
        """Create a process from a ProcessParams instance."""
        return cls(
            gain=params.gain,
            time_constant=params.time_constant,
            dead_time=params.dead_time,
            sample_time=params.sample_time,
            disturbance=params.disturbance,
            seed=seed,
            name=name,
        )

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    @property
    def gain(self) -> float:
        with self._lock:
            return self._K

    @gain.setter
    def gain(self, value: float) -> None:
        value = validate_real(value, "gain")
        with self._lock:
            self._K = value

    @property
    def time_constant(self) -> float:
        with self._lock:
            return self._tau

    @time_constant.setter
    def time_constant(self, value: float) -> None:
        value = validate_real(value, "time_constant")
        with self._lock:
            self._tau = max(MIN_TIME_CONSTANT, value)

    @property
    def dead_time(self) -> float:
        with self._lock:
            return self._Td

    @dead_time.setter
    def dead_time(self, value: float) -> None:
        value = max(0.0, validate_real(value, "dead_time"))
        with self._lock:
            if value != self._Td:
                self._Td = value
                self._rebuild_buffer()

    @property
    def sample_time(self) -> float:
        with self._lock:
            return self._dt

    @sample_time.setter
    def sample_time(self, value: float) -> None:
        value = validate_positive(value, "sample_time")
        with self._lock:
            if value != self._dt:
                self._dt = value
                self._rebuild_buffer()

    @property
    def disturbance(self) -> float:
        """Disturbance factor in percent."""
        with self._lock:
            return self._disturbance

    @disturbance.setter
    def disturbance(self, value: float) -> None:
        value = validate_real(value, "disturbance")
        with self._lock:
            self._disturbance = clamp(value, DISTURBANCE_MIN, DISTURBANCE_MAX)

    def set_process_parameters(self, gain: float, time_constant: float, dead_time: float) -> None:
        """Set K, tau and Td together; nothing changes if any value is rejected."""
        gain = validate_real(gain, "gain")
        time_constant = validate_real(time_constant, "time_constant")
        dead_time = validate_real(dead_time, "dead_time")
        with self._lock:
            self.gain = gain
            self.time_constant = time_constant
            self.dead_time = dead_time

    @property
    def params(self) -> ProcessParams:
        """Current constants as a ProcessParams."""
        with self._lock:
            return ProcessParams(
                gain=self._K,
                time_constant=self._tau,
                dead_time=self._Td,
                disturbance=self._disturbance,
                sample_time=self._dt,
            )

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    @property
    def input(self) -> float:
        """Process input U (the controller output)."""
        with self._lock:
            return self._input

    @input.setter
    def input(self, value: float) -> None:
        value = validate_real(value, "input")
        with self._lock:
            self._input = value

    @property
    def output(self) -> float:
        """Process output Y (the process variable)."""
        with self._lock:
            return self._output

    @output.setter
    def output(self, value: float) -> None:
        value = validate_real(value, "output")
        with self._lock:
            self._output = value

    @property
    def time(self) -> float:
        """Process clock, advanced by every update."""
        with self._lock:
            return self._time

    @property
    def delayed_input(self) -> float:
        """Input value the last update acted on."""
        with self._lock:
            return self._delayed_input

    @property
    def last_disturbance(self) -> float:
        """Disturbance added to Y by the last update."""
        with self._lock:
            return self._last_disturbance

    @property
    def dead_time_buffer(self) -> DeadTimeBuffer:
        return self._buffer

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def initialize(self, initial_input: float, initial_output: float) -> None:
        """
        Place the process at an operating point.

        The dead-time buffer is filled with ``initial_input`` so the delayed
        input equals the present input from the first update on.
        """
        initial_input = validate_real(initial_input, "initial_input")
        initial_output = validate_real(initial_output, "initial_output")
        with self._lock:
            self._input = initial_input
            self._output = initial_output
            self._delayed_input = initial_input
            self._last_disturbance = 0.0
            self._time = 0.0
            self._buffer.configure(self._Td, self._dt)
            self._buffer.seed(self._input, self._time)
            logger.debug(
                "%s initialized: U=%.3f Y=%.3f K=%.3f tau=%.3f Td=%.3f",
                self._name, self._input, self._output, self._K, self._tau, self._Td
            )

    def update(self, dt: Optional[float] = None) -> float:
        """
        Advance the process by one step.

        Args:
            dt: Step length in seconds (uses sample_time if None)

        Returns:
            New process output Y
        """
        with self._lock:
            step = self._dt if dt is None else validate_positive(dt, "dt")
            now = self._time

            delayed_input = self._buffer.delayed_value(now - self._Td, default=self._input)
            steady_state = self._K * delayed_input

            # Euler step of dY/dt = (Yss - Y) / tau
            output = self._output + step * (steady_state - self._output) / self._tau
            disturbance = self._draw_disturbance()

            self._output = output + disturbance
            self._delayed_input = delayed_input
            self._last_disturbance = disturbance
            self._buffer.push(now, self._input)
            self._time = now + step
            return self._output

    def _draw_disturbance(self) -> float:
        """Bipolar noise: (factor / 100) * U(0, 1) with a random sign."""
        if self._disturbance <= 0.0:
            return 0.0
        amplitude = (self._disturbance / 100.0) * self._rng.random()
        sign = 1.0 if self._rng.random() > 0.5 else -1.0
        return amplitude * sign

    def reset(self) -> None:
        """Re-seed the dead-time buffer with the current input; U and Y are kept."""
        with self._lock:
            self._time = 0.0
            self._buffer.configure(self._Td, self._dt)
            self._buffer.seed(self._input, self._time)

    def _rebuild_buffer(self) -> None:
        self._buffer.configure(self._Td, self._dt)
        self._buffer.seed(self._input, self._time)
        logger.debug(
            "%s dead-time buffer rebuilt: Td=%.3f dt=%.3f capacity=%d",
            self._name, self._Td, self._dt, self._buffer.capacity
        )

    # ------------------------------------------------------------------
    # Analysis helpers
    # ------------------------------------------------------------------

    def steady_state_output(self, input_value: float) -> float:
        """Output the process settles to for a constant input."""
        return self.gain * input_value

    def transfer_function(self, pade_order: int = 3) -> ct.TransferFunction:
        """
        Continuous transfer function, dead time replaced by a Pade approximation.

        Args:
            pade_order: Order of the Pade approximation of exp(-Td*s)
        """
        with self._lock:
            K, tau, Td = self._K, self._tau, self._Td
        lag = ct.TransferFunction([K], [tau, 1])
        if Td <= 0:
            return lag
        num, den = ct.pade(Td, pade_order)
        return lag * ct.TransferFunction(num, den)

    def tuning_suggestions(self) -> Dict[str, Dict[str, float]]:
        """
        PID gains from classical FOPDT tuning rules, in parallel form.

        Returns an empty dict when the process gain is zero.
        """
        with self._lock:
            K, tau, L = self._K, self._tau, self._Td

        if is_negligible(K):
            return {}

        # Rules divide by dead time
        if L < 1e-6:
            L = 0.01 * tau

        suggestions = {}

        # Ziegler-Nichols (open loop): Ti = 2L, Td = L/2
        kp = 1.2 * tau / (K * L)
        suggestions['ziegler_nichols'] = {
            'kp': kp,
            'ki': kp / (2.0 * L),
            'kd': kp * 0.5 * L,
        }

        # Cohen-Coon
        r = L / tau
        kp = (1.0 / K) * (1.0 / r) * (4.0 / 3.0 + r / 4.0)
        ti = L * (32.0 + 6.0 * r) / (13.0 + 8.0 * r)
        td = 4.0 * L / (11.0 + 2.0 * r)
        suggestions['cohen_coon'] = {
            'kp': kp,
            'ki': kp / ti,
            'kd': kp * td,
        }

        # IMC (lambda tuning) PI, aggressive lambda = tau, conservative lambda = 3*tau
        for label, lambda_c in (('imc_aggressive', tau), ('imc_conservative', 3.0 * tau)):
            kp = tau / (K * (lambda_c + L))
            suggestions[label] = {
                'kp': kp,
                'ki': kp / tau,
                'kd': 0.0,
            }

        return suggestions

    def get_state(self) -> Dict[str, Any]:
        """Get current process state as dictionary."""
        with self._lock:
            return {
                'input': self._input,
                'output': self._output,
                'delayed_input': self._delayed_input,
                'time': self._time,
                'disturbance': self._disturbance,
                'last_disturbance': self._last_disturbance,
                'buffer_size': len(self._buffer),
            }

    def get_info(self) -> Dict[str, Any]:
        """Get process parameters."""
        with self._lock:
            return {
                'type': 'FOPDTProcess',
                'gain': self._K,
                'time_constant': self._tau,
                'dead_time': self._Td,
                'sample_time': self._dt,
                'disturbance': self._disturbance,
                'buffer_capacity': self._buffer.capacity,
            }

    def __repr__(self) -> str:
        return (
            f"FOPDTProcess(K={self._K}, tau={self._tau}, Td={self._Td}, "
            f"dt={self._dt}, disturbance={self._disturbance}%)"
        )
