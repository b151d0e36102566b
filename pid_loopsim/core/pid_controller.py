"""
PID Controller Implementation.

Features:
- Three algorithms: Basic PID, I-PD and PI-D
- Output clamping to [output_min, output_max]
- Anti-windup by clamping the integral sum to the output limits
- Manual/Automatic modes with bumpless transfer to Manual
- Steady-state seeding so a loop can start at a non-zero operating point
- Thread-safe: every read and mutation is serialized by one lock
"""

from typing import Optional, Dict, Any, Tuple
from dataclasses import dataclass
import logging
import math
import threading
import time

from pid_loopsim.core.pid_params import PIDParams, PIDAlgorithm, ControllerMode
from pid_loopsim.utils.math_utils import clamp, is_negligible, safe_divisor
from pid_loopsim.utils.validators import (
    ValidationError,
    validate_positive,
    validate_real,
)

logger = logging.getLogger(__name__)


class ControllerClosedError(RuntimeError):
    """Raised when a closed controller is asked to compute."""
    pass


@dataclass
class PIDState:
    """Snapshot of the controller after its last computation."""
    setpoint: float = 0.0
    measurement: float = 0.0
    error: float = 0.0

    # Component outputs
    p_term: float = 0.0
    i_term: float = 0.0
    d_term: float = 0.0

    # Pre/post saturation output
    output_unsat: float = 0.0
    output: float = 0.0

    integral_sum: float = 0.0
    saturated: bool = False
    mode: ControllerMode = ControllerMode.AUTOMATIC

    def to_dict(self) -> Dict[str, Any]:
        """Convert state to dictionary."""
        return {
            'setpoint': self.setpoint,
            'measurement': self.measurement,
            'error': self.error,
            'p_term': self.p_term,
            'i_term': self.i_term,
            'd_term': self.d_term,
            'output_unsat': self.output_unsat,
            'output': self.output,
            'integral_sum': self.integral_sum,
            'saturated': self.saturated,
            'mode': self.mode.value,
        }


class PIDController:
    """
    PID controller with selectable algorithm, anti-windup and bumpless transfer.

    The controller does not sample time itself; the caller passes the
    elapsed time of every step to ``update``.

    Example:
        >>> pid = PIDController(PIDParams(kp=1.0, ki=0.1, kd=0.05))
        >>> pid.seed_steady_state(output=50.0, measurement=50.0)
        >>> pid.setpoint = 50.0
        >>> pid.initialize()
        >>> pid.update(50.0, dt=0.1)
        50.0
    """

    def __init__(self, params: Optional[PIDParams] = None, name: str = "PID"):
        """
        Initialize PID controller.

        Args:
            params: PID parameters (uses defaults if None)
            name: Display name used in log messages
        """
        self._params = params if params is not None else PIDParams()
        self._name = name
        self._lock = threading.RLock()

        self._mode = ControllerMode.AUTOMATIC
        self._setpoint: float = 0.0
        self._measurement: float = 0.0
        self._output: float = 0.0
        self._manual_output: float = 0.0

        # Differencing and accumulation state
        self._integral: float = 0.0
        self._prev_error: float = 0.0
        self._prev_measurement: float = 0.0
        # Measurement the I-PD proportional term is referenced to
        self._measurement_reference: float = 0.0

        self._state = PIDState()
        # Wall clock of the last update, diagnostics only
        self._last_update_time: Optional[float] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def params(self) -> PIDParams:
        """Get current parameters."""
        with self._lock:
            return self._params

    @property
    def state(self) -> PIDState:
        """Get state of the last computation."""
        with self._lock:
            return self._state

    @property
    def setpoint(self) -> float:
        with self._lock:
            return self._setpoint

    @setpoint.setter
    def setpoint(self, value: float) -> None:
        value = validate_real(value, "setpoint")
        with self._lock:
            self._setpoint = value

    @property
    def measurement(self) -> float:
        """Process variable seen by the last update."""
        with self._lock:
            return self._measurement

    @property
    def output(self) -> float:
        """Current controller output (MV)."""
        with self._lock:
            return self._output

    @property
    def manual_output(self) -> float:
        with self._lock:
            return self._manual_output

    @manual_output.setter
    def manual_output(self, value: float) -> None:
        """Set manual output; clamped to the output limits, applied at once in Manual mode."""
        value = validate_real(value, "manual_output")
        with self._lock:
            self._manual_output = clamp(value, self._params.output_min, self._params.output_max)
            if self._mode is ControllerMode.MANUAL:
                self._output = self._manual_output

    @property
    def mode(self) -> ControllerMode:
        with self._lock:
            return self._mode

    @property
    def auto_mode(self) -> bool:
        with self._lock:
            return self._mode is ControllerMode.AUTOMATIC

    @auto_mode.setter
    def auto_mode(self, value: bool) -> None:
        self.set_mode(ControllerMode.AUTOMATIC if value else ControllerMode.MANUAL)

    @property
    def algorithm(self) -> PIDAlgorithm:
        with self._lock:
            return self._params.algorithm

    @algorithm.setter
    def algorithm(self, value: PIDAlgorithm) -> None:
        if not isinstance(value, PIDAlgorithm):
            raise ValidationError(f"algorithm must be a PIDAlgorithm, got {value!r}")
        with self._lock:
            if value is not self._params.algorithm:
                self._apply_algorithm(self._params.copy(algorithm=value))
                logger.debug("%s: algorithm changed to %s", self._name, value.value)

    @property
    def error(self) -> float:
        """Setpoint minus the last measurement."""
        with self._lock:
            return self._setpoint - self._measurement

    @property
    def integral(self) -> float:
        """Accumulated integral sum (error-seconds)."""
        with self._lock:
            return self._integral

    @property
    def integral_limits(self) -> Tuple[float, float]:
        """Bounds applied to the integral sum, infinite when anti-windup is off."""
        with self._lock:
            return self._integral_bounds()

    @property
    def last_update_time(self) -> Optional[float]:
        """Monotonic wall-clock time of the last update (diagnostics only)."""
        with self._lock:
            return self._last_update_time

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    def update(self, measurement: float, dt: float) -> float:
        """
        Compute a new output from the measured process variable.

        In Manual mode the output is the (clamped) manual output and no
        integral or derivative state advances.

        Args:
            measurement: Process variable (PV)
            dt: Time elapsed since the previous update, in seconds

        Returns:
            Controller output (MV), clamped to the output limits

        Raises:
            ValidationError: If dt is not positive or measurement is not a number
            ControllerClosedError: If the controller has been closed
        """
        with self._lock:
            self._check_open()
            dt = validate_positive(dt, "dt")
            measurement = validate_real(measurement, "measurement")

            params = self._params
            self._measurement = measurement
            self._last_update_time = time.monotonic()

            if self._mode is ControllerMode.MANUAL:
                self._output = clamp(self._manual_output, params.output_min, params.output_max)
                self._state = PIDState(
                    setpoint=self._setpoint,
                    measurement=measurement,
                    error=self._setpoint - measurement,
                    output_unsat=self._output,
                    output=self._output,
                    integral_sum=self._integral,
                    i_term=params.ki * self._integral,
                    mode=self._mode,
                )
                return self._output

            error = self._setpoint - measurement

            p_term = self._calculate_proportional(error, measurement)
            i_term = self._calculate_integral(error, dt)
            d_term = self._calculate_derivative(error, measurement, dt)

            output_unsat = p_term + i_term + d_term
            output = clamp(output_unsat, params.output_min, params.output_max)

            self._prev_error = error
            self._prev_measurement = measurement
            self._output = output

            self._state = PIDState(
                setpoint=self._setpoint,
                measurement=measurement,
                error=error,
                p_term=p_term,
                i_term=i_term,
                d_term=d_term,
                output_unsat=output_unsat,
                output=output,
                integral_sum=self._integral,
                saturated=output != output_unsat,
                mode=self._mode,
            )
            return output

    def _calculate_proportional(self, error: float, measurement: float) -> float:
        if self._params.algorithm is PIDAlgorithm.I_PD:
            # Acts on PV movement only, so a setpoint step produces no kick
            return -self._params.kp * (measurement - self._measurement_reference)
        return self._params.kp * error

    def _calculate_integral(self, error: float, dt: float) -> float:
        """Accumulate error and clamp the sum before applying Ki."""
        self._integral += error * dt
        if self._params.anti_windup:
            low, high = self._integral_bounds()
            self._integral = clamp(self._integral, low, high)
        return self._params.ki * self._integral

    def _calculate_derivative(self, error: float, measurement: float, dt: float) -> float:
        if self._params.kd == 0:
            return 0.0
        if self._params.algorithm is PIDAlgorithm.BASIC_PID:
            return self._params.kd * (error - self._prev_error) / dt
        # Derivative on measurement
        return -self._params.kd * (measurement - self._prev_measurement) / dt

    def _integral_bounds(self) -> Tuple[float, float]:
        if not self._params.anti_windup:
            return -math.inf, math.inf
        ki = safe_divisor(self._params.ki)
        return self._params.output_min / ki, self._params.output_max / ki

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def seed_steady_state(self, output: float, measurement: float) -> None:
        """
        Declare the operating point the next ``initialize`` should hold.

        Sets the current output, the manual output and the measurement
        without running the control law.
        """
        output = validate_real(output, "output")
        measurement = validate_real(measurement, "measurement")
        with self._lock:
            self._check_open()
            self._output = clamp(output, self._params.output_min, self._params.output_max)
            self._manual_output = self._output
            self._measurement = measurement

    def initialize(self) -> None:
        """
        Clear differencing state and pre-load the integral for steady state.

        In Automatic mode with a non-negligible Ki the integral sum is set to
        ``output / Ki`` so that the next update with zero error reproduces
        the current output exactly. Otherwise the integral sum is zero.
        """
        with self._lock:
            self._check_open()
            self._prev_error = 0.0
            self._prev_measurement = self._measurement
            self._measurement_reference = self._measurement

            ki = self._params.ki
            if self._mode is ControllerMode.AUTOMATIC and not is_negligible(ki):
                low, high = self._integral_bounds()
                self._integral = clamp(self._output / ki, low, high)
            else:
                self._integral = 0.0

            self._state = PIDState(
                setpoint=self._setpoint,
                measurement=self._measurement,
                error=self._setpoint - self._measurement,
                i_term=ki * self._integral,
                output_unsat=self._output,
                output=self._output,
                integral_sum=self._integral,
                mode=self._mode,
            )
            logger.debug(
                "%s initialized: SP=%.3f PV=%.3f MV=%.3f integral=%.3f",
                self._name, self._setpoint, self._measurement, self._output, self._integral
            )

    def reset(self) -> None:
        """Same as ``initialize``; output and measurement are kept."""
        self.initialize()

    def set_mode(self, mode: ControllerMode) -> None:
        """
        Switch between Manual and Automatic.

        Automatic -> Manual copies the last output into the manual output so
        the output does not step. Manual -> Automatic leaves the integral
        untouched; call ``initialize`` afterwards to pre-load it.
        """
        if not isinstance(mode, ControllerMode):
            raise ValidationError(f"mode must be a ControllerMode, got {mode!r}")
        with self._lock:
            if mode is self._mode:
                return
            if mode is ControllerMode.MANUAL:
                self._manual_output = self._output
            self._mode = mode
            logger.info("%s switched to %s at MV=%.3f", self._name, mode.value, self._output)

    def set_tuning(self, kp: float, ki: float, kd: float, bumpless: bool = False) -> None:
        """
        Update the gains.

        Args:
            kp: Proportional gain
            ki: Integral gain
            kd: Derivative gain
            bumpless: If True, rescale the integral sum so Ki*sum is unchanged

        Raises:
            ValidationError: If any gain is negative
        """
        with self._lock:
            new_params = self._params.copy(kp=kp, ki=ki, kd=kd)
            old_ki = self._params.ki
            if bumpless and not is_negligible(old_ki) and not is_negligible(new_params.ki):
                self._integral *= old_ki / new_params.ki
            self._params = new_params
            self._clamp_integral()
            logger.debug("%s tuning: %s", self._name, new_params)

    def set_output_limits(self, output_min: float, output_max: float) -> None:
        """
        Update output limits; output, manual output and integral are re-clamped.

        Raises:
            ValidationError: If output_min >= output_max
        """
        with self._lock:
            self._params = self._params.copy(output_min=output_min, output_max=output_max)
            low, high = self._params.output_min, self._params.output_max
            self._output = clamp(self._output, low, high)
            self._manual_output = clamp(self._manual_output, low, high)
            self._clamp_integral()
            logger.debug("%s output limits: [%s, %s]", self._name, low, high)

    def set_anti_windup(self, enabled: bool) -> None:
        with self._lock:
            self._params = self._params.copy(anti_windup=bool(enabled))
            self._clamp_integral()

    def set_params(self, params: PIDParams) -> None:
        """Replace all parameters at once."""
        if not isinstance(params, PIDParams):
            raise ValidationError(f"params must be PIDParams, got {type(params).__name__}")
        with self._lock:
            if params.algorithm is not self._params.algorithm:
                self._apply_algorithm(params)
            self._params = params
            low, high = params.output_min, params.output_max
            self._output = clamp(self._output, low, high)
            self._manual_output = clamp(self._manual_output, low, high)
            self._clamp_integral()

    def _apply_algorithm(self, params: PIDParams) -> None:
        """
        Install parameters with a different algorithm without a step in MV.

        The I-PD reference is re-captured at the last measurement and the
        change in the proportional term is moved into the integral sum.
        """
        error = self._setpoint - self._measurement
        old_p = self._calculate_proportional(error, self._measurement)
        self._params = params
        self._measurement_reference = self._measurement
        new_p = self._calculate_proportional(error, self._measurement)
        if self._mode is ControllerMode.AUTOMATIC and not is_negligible(params.ki):
            self._integral += (old_p - new_p) / params.ki
            self._clamp_integral()

    def _clamp_integral(self) -> None:
        if self._params.anti_windup:
            low, high = self._integral_bounds()
            self._integral = clamp(self._integral, low, high)

    def _check_open(self) -> None:
        if self._closed:
            raise ControllerClosedError(f"Controller '{self._name}' is closed")

    def close(self) -> None:
        """Mark the controller closed; further updates raise."""
        with self._lock:
            self._closed = True

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False

    def __repr__(self) -> str:
        return f"PIDController({self._name!r}, {self._params})"
