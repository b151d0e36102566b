"""
Control loop orchestration.

One tick runs controller -> process -> bookkeeping as a single synchronous
call chain under the loop lock, so a display thread can read a consistent
snapshot while a timer thread drives ticks.
"""

from typing import Dict, Any, Optional, Callable
from dataclasses import dataclass, asdict
from enum import Enum
import logging
import threading

from pid_loopsim.core.pid_controller import PIDController, PIDState, ControllerClosedError
from pid_loopsim.core.pid_params import PIDAlgorithm, ControllerMode
from pid_loopsim.plants.process_params import ProcessKind, create_process
from pid_loopsim.simulation.config import LoopConfig, SPEED_MIN, SPEED_MAX
from pid_loopsim.logging.csv_logger import CSVLogger, TICK_COLUMNS
from pid_loopsim.logging.data_buffer import DataBuffer
from pid_loopsim.utils.math_utils import clamp, is_negligible
from pid_loopsim.utils.validators import ValidationError, validate_positive, validate_real

logger = logging.getLogger(__name__)


class LoopParameter(Enum):
    """Typed identifiers for every value a display can bind to."""
    SETPOINT = "setpoint"
    PROCESS_VARIABLE = "process_variable"
    OUTPUT = "output"
    ERROR = "error"
    INTEGRAL = "integral"
    TIME = "time"
    MANUAL_OUTPUT = "manual_output"
    AUTO_MODE = "auto_mode"
    SETPOINT_TRACKING = "setpoint_tracking"
    KP = "kp"
    KI = "ki"
    KD = "kd"
    OUTPUT_MIN = "output_min"
    OUTPUT_MAX = "output_max"
    PROCESS_GAIN = "process_gain"
    TIME_CONSTANT = "time_constant"
    DEAD_TIME = "dead_time"
    DISTURBANCE = "disturbance"
    TICK_DURATION = "tick_duration"
    SPEED_MULTIPLIER = "speed_multiplier"


@dataclass(frozen=True)
class LoopSnapshot:
    """Consistent view of the loop after a tick."""
    tick: int
    time: float
    setpoint: float
    process_variable: float
    output: float
    error: float
    p_term: float
    i_term: float
    d_term: float
    integral_sum: float
    auto_mode: bool
    saturated: bool
    manual_output: float
    algorithm: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ControlLoop:
    """
    Closed-loop simulation of a PID controller driving a FOPDT process.

    The loop owns its controller and process; all changes go through the
    loop's setters.

    Example:
        >>> loop = ControlLoop()
        >>> loop.setpoint = 70.0
        >>> for _ in range(100):
        ...     snapshot = loop.tick()
        >>> snapshot.process_variable > 50.0
        True
    """

    def __init__(
        self,
        config: Optional[LoopConfig] = None,
        kind: ProcessKind = ProcessKind.FIRST_ORDER_DEAD_TIME,
        seed: Optional[int] = None,
        csv_path: Optional[str] = None,
        csv_append: bool = False,
        history_size: Optional[int] = None,
        name: str = "Loop",
    ):
        """
        Initialize the loop at its steady operating point.

        Args:
            config: Loop configuration (defaults if None)
            kind: Process shape
            seed: Seed for the process disturbance
            csv_path: Write every tick to this CSV file if given
            csv_append: Append to an existing CSV file instead of replacing it
            history_size: Keep this many recent ticks in memory if given
            name: Display name used in log messages
        """
        self._config = config if config is not None else LoopConfig()
        self._name = name
        self._lock = threading.RLock()

        self._tick_duration = self._config.tick_duration
        self._speed = self._config.speed_multiplier
        self._setpoint_tracking = self._config.setpoint_tracking

        self._controller = PIDController(self._config.controller, name=f"{name} controller")
        if not self._config.auto_mode:
            self._controller.set_mode(ControllerMode.MANUAL)
        self._process = create_process(
            kind,
            self._config.process.copy(sample_time=self.effective_step),
            seed=seed,
        )

        self._time: float = 0.0
        self._ticks: int = 0
        self._closed = False

        self._csv_logger: Optional[CSVLogger] = None
        if csv_path is not None:
            self._csv_logger = CSVLogger(csv_path, columns=TICK_COLUMNS, append=csv_append)

        self._history: Optional[DataBuffer] = None
        if history_size is not None:
            self._history = DataBuffer(max_size=history_size, columns=TICK_COLUMNS)

        self.initialize(self._config.operating_point)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, operating_point: Optional[float] = None) -> LoopSnapshot:
        """
        Put the loop at steady state with SP = PV.

        The controller output is chosen so the process holds PV at
        ``operating_point`` (midpoint of the output range if None); if that
        output would violate the output limits it is clamped and PV follows.
        The current Automatic/Manual mode is kept.

        Returns:
            Snapshot of the initialized loop
        """
        with self._lock:
            self._check_open()
            params = self._controller.params
            if operating_point is None:
                operating_point = (params.output_min + params.output_max) / 2.0
            operating_point = validate_real(operating_point, "operating_point")

            gain = self._process.gain
            if is_negligible(gain):
                output = clamp(operating_point, params.output_min, params.output_max)
            else:
                output = clamp(operating_point / gain, params.output_min, params.output_max)
            pv = self._process.steady_state_output(output)

            # Process first, then controller; the integral is computed last
            # from the already-correct output, otherwise the first tick bumps
            self._process.input = output
            self._process.output = pv
            self._process.initialize(output, pv)
            self._controller.seed_steady_state(output, pv)
            self._controller.setpoint = pv
            self._controller.initialize()

            self._time = 0.0
            self._ticks = 0
            if self._history is not None:
                self._history.clear()

            logger.info(
                "%s initialized: SP=%.3f PV=%.3f MV=%.3f mode=%s",
                self._name, pv, pv, output, self._controller.mode.value
            )
            return self._snapshot()

    def tick(self, dt: Optional[float] = None) -> LoopSnapshot:
        """
        Advance the loop by one step.

        Args:
            dt: Tick duration in seconds (configured tick duration if None);
                the simulated step is ``dt * speed_multiplier``

        Returns:
            Snapshot after the step

        Raises:
            ValidationError: If dt is not positive
            ControllerClosedError: If the loop has been closed
        """
        with self._lock:
            self._check_open()
            base = self._tick_duration if dt is None else validate_positive(dt, "dt")
            step = base * self._speed

            pv = self._process.output
            auto = self._controller.auto_mode
            if not auto and self._setpoint_tracking:
                self._controller.setpoint = pv

            output = self._controller.update(pv, step)
            if auto:
                # Keeps a later switch to Manual bumpless
                self._controller.manual_output = output

            self._process.input = output
            self._process.update(step)

            self._time += step
            self._ticks += 1

            snapshot = self._snapshot()
            self._record(snapshot)
            return snapshot

    def run(self, n_ticks: int, dt: Optional[float] = None) -> LoopSnapshot:
        """Run several ticks and return the last snapshot."""
        if n_ticks < 1:
            raise ValidationError(f"n_ticks must be at least 1, got {n_ticks}")
        snapshot = None
        for _ in range(n_ticks):
            snapshot = self.tick(dt)
        return snapshot

    def reset(self) -> LoopSnapshot:
        """
        Clear time-dependent state but keep the operating point.

        Integral sum, dead-time buffer and elapsed time are cleared; MV, PV,
        setpoint, tuning and process constants are kept, so the loop keeps
        responding to MV changes right away.
        """
        with self._lock:
            self._check_open()
            output = self._controller.output
            pv = self._process.output

            self._process.reset()
            self._controller.seed_steady_state(output, pv)
            self._controller.reset()

            self._time = 0.0
            self._ticks = 0
            if self._history is not None:
                self._history.clear()

            logger.info("%s reset at PV=%.3f MV=%.3f", self._name, pv, output)
            return self._snapshot()

    def set_mode(self, mode: ControllerMode) -> None:
        """
        Switch between Manual and Automatic without a step in MV.

        Manual -> Automatic re-initializes the controller so the integral
        reproduces the current MV.
        """
        if not isinstance(mode, ControllerMode):
            raise ValidationError(f"mode must be a ControllerMode, got {mode!r}")
        with self._lock:
            self._check_open()
            if mode is self._controller.mode:
                return
            self._controller.set_mode(mode)
            if mode is ControllerMode.AUTOMATIC:
                self._controller.seed_steady_state(self._controller.output, self._process.output)
                self._controller.initialize()
            else:
                self._controller.manual_output = self._controller.output
            logger.info("%s mode -> %s", self._name, mode.value)

    def close(self) -> None:
        """Flush and close the CSV log and close the controller."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._csv_logger is not None:
                self._csv_logger.close()
            self._controller.close()

    def flush_log(self) -> None:
        """Flush any buffered CSV rows to disk."""
        if self._csv_logger is not None:
            self._csv_logger.flush()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False

    def _check_open(self) -> None:
        if self._closed or self._controller.closed:
            raise ControllerClosedError(f"Loop '{self._name}' is closed")

    def _snapshot(self) -> LoopSnapshot:
        state: PIDState = self._controller.state
        setpoint = self._controller.setpoint
        pv = self._process.output
        return LoopSnapshot(
            tick=self._ticks,
            time=self._time,
            setpoint=setpoint,
            process_variable=pv,
            output=self._controller.output,
            error=setpoint - pv,
            p_term=state.p_term,
            i_term=state.i_term,
            d_term=state.d_term,
            integral_sum=self._controller.integral,
            auto_mode=self._controller.auto_mode,
            saturated=state.saturated,
            manual_output=self._controller.manual_output,
            algorithm=self._controller.algorithm.value,
        )

    def _record(self, snapshot: LoopSnapshot) -> None:
        if self._csv_logger is None and self._history is None:
            return
        row = snapshot.to_dict()
        if self._history is not None:
            self._history.append(row)
        if self._csv_logger is not None:
            # The tick is already committed; unwritten rows stay buffered
            # in the logger and go out with the next successful flush
            try:
                self._csv_logger.log(row)
            except RuntimeError as e:
                logger.warning("%s: CSV write failed at tick %d: %s", self._name, snapshot.tick, e)

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def snapshot(self) -> LoopSnapshot:
        with self._lock:
            return self._snapshot()

    @property
    def name(self) -> str:
        return self._name

    @property
    def time(self) -> float:
        """Simulated seconds since initialize/reset."""
        with self._lock:
            return self._time

    @property
    def tick_count(self) -> int:
        with self._lock:
            return self._ticks

    @property
    def process_variable(self) -> float:
        with self._lock:
            return self._process.output

    @property
    def output(self) -> float:
        with self._lock:
            return self._controller.output

    @property
    def error(self) -> float:
        with self._lock:
            return self._controller.setpoint - self._process.output

    @property
    def integral(self) -> float:
        """Accumulated integral sum (diagnostic)."""
        with self._lock:
            return self._controller.integral

    @property
    def integral_limits(self):
        with self._lock:
            return self._controller.integral_limits

    @property
    def controller_state(self) -> PIDState:
        with self._lock:
            return self._controller.state

    @property
    def delayed_input(self) -> float:
        """Process input currently emerging from the dead time."""
        with self._lock:
            return self._process.delayed_input

    @property
    def history(self) -> Optional[DataBuffer]:
        return self._history

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def effective_step(self) -> float:
        """Simulated seconds per tick at the configured duration and speed."""
        return self._tick_duration * self._speed

    @property
    def config(self) -> LoopConfig:
        """Current settings as a LoopConfig."""
        with self._lock:
            process = self._process.params.copy(sample_time=self._config.process.sample_time)
            return LoopConfig(
                controller=self._controller.params,
                process=process,
                tick_duration=self._tick_duration,
                speed_multiplier=self._speed,
                setpoint_tracking=self._setpoint_tracking,
                auto_mode=self._controller.auto_mode,
                operating_point=self._config.operating_point,
            )

    def process_info(self) -> Dict[str, Any]:
        return self._process.get_info()

    def tuning_suggestions(self) -> Dict[str, Dict[str, float]]:
        """Classical FOPDT tuning rules applied to the current process."""
        return self._process.tuning_suggestions()

    def transfer_function(self, pade_order: int = 3):
        """Continuous-time process transfer function (python-control)."""
        return self._process.transfer_function(pade_order)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    @property
    def setpoint(self) -> float:
        with self._lock:
            return self._controller.setpoint

    @setpoint.setter
    def setpoint(self, value: float) -> None:
        with self._lock:
            self._controller.setpoint = value

    @property
    def mode(self) -> ControllerMode:
        with self._lock:
            return self._controller.mode

    @property
    def auto_mode(self) -> bool:
        with self._lock:
            return self._controller.auto_mode

    @auto_mode.setter
    def auto_mode(self, value: bool) -> None:
        self.set_mode(ControllerMode.AUTOMATIC if value else ControllerMode.MANUAL)

    @property
    def manual_output(self) -> float:
        with self._lock:
            return self._controller.manual_output

    @manual_output.setter
    def manual_output(self, value: float) -> None:
        with self._lock:
            self._controller.manual_output = value

    @property
    def setpoint_tracking(self) -> bool:
        with self._lock:
            return self._setpoint_tracking

    @setpoint_tracking.setter
    def setpoint_tracking(self, value: bool) -> None:
        with self._lock:
            self._setpoint_tracking = bool(value)

    @property
    def algorithm(self) -> PIDAlgorithm:
        with self._lock:
            return self._controller.algorithm

    @algorithm.setter
    def algorithm(self, value: PIDAlgorithm) -> None:
        with self._lock:
            self._controller.algorithm = value

    def set_tuning(self, kp: float, ki: float, kd: float, bumpless: bool = False) -> None:
        with self._lock:
            self._controller.set_tuning(kp, ki, kd, bumpless=bumpless)

    def set_output_limits(self, output_min: float, output_max: float) -> None:
        with self._lock:
            self._controller.set_output_limits(output_min, output_max)

    def set_anti_windup(self, enabled: bool) -> None:
        with self._lock:
            self._controller.set_anti_windup(enabled)

    def set_process_parameters(self, gain: float, time_constant: float, dead_time: float) -> None:
        with self._lock:
            self._process.set_process_parameters(gain, time_constant, dead_time)

    @property
    def process_gain(self) -> float:
        with self._lock:
            return self._process.gain

    @process_gain.setter
    def process_gain(self, value: float) -> None:
        with self._lock:
            self._process.gain = value

    @property
    def time_constant(self) -> float:
        with self._lock:
            return self._process.time_constant

    @time_constant.setter
    def time_constant(self, value: float) -> None:
        with self._lock:
            self._process.time_constant = value

    @property
    def dead_time(self) -> float:
        with self._lock:
            return self._process.dead_time

    @dead_time.setter
    def dead_time(self, value: float) -> None:
        with self._lock:
            self._process.dead_time = value

    @property
    def disturbance(self) -> float:
        """Disturbance factor in percent."""
        with self._lock:
            return self._process.disturbance

    @disturbance.setter
    def disturbance(self, value: float) -> None:
        with self._lock:
            self._process.disturbance = value

    @property
    def tick_duration(self) -> float:
        with self._lock:
            return self._tick_duration

    @tick_duration.setter
    def tick_duration(self, value: float) -> None:
        value = validate_positive(value, "tick_duration")
        with self._lock:
            self._tick_duration = value
            self._process.sample_time = self.effective_step

    @property
    def speed_multiplier(self) -> float:
        with self._lock:
            return self._speed

    @speed_multiplier.setter
    def speed_multiplier(self, value: float) -> None:
        value = clamp(validate_real(value, "speed_multiplier"), SPEED_MIN, SPEED_MAX)
        with self._lock:
            if value != self._speed:
                self._speed = value
                self._process.sample_time = self.effective_step
                logger.debug("%s speed %.2fx, step %.4fs", self._name, value, self.effective_step)

    # ------------------------------------------------------------------
    # Typed parameter access
    # ------------------------------------------------------------------

    def get_value(self, parameter: LoopParameter) -> Any:
        """Read any bindable value by identifier."""
        try:
            getter = _GETTERS[parameter]
        except KeyError:
            raise ValidationError(f"Unknown loop parameter: {parameter!r}") from None
        return getter(self)

    def set_value(self, parameter: LoopParameter, value: Any) -> None:
        """
        Write a bindable value by identifier.

        Raises:
            ValidationError: If the parameter is read-only or the value is rejected
        """
        setter = _SETTERS.get(parameter)
        if setter is None:
            raise ValidationError(f"Loop parameter {parameter!r} is read-only")
        setter(self, value)

    def __repr__(self) -> str:
        return f"ControlLoop({self._name!r}, t={self._time:.3f}s, ticks={self._ticks})"


def _set_gain(name: str) -> Callable[[ControlLoop, float], None]:
    def setter(loop: ControlLoop, value: float) -> None:
        params = loop._controller.params
        gains = {'kp': params.kp, 'ki': params.ki, 'kd': params.kd}
        gains[name] = value
        loop.set_tuning(**gains)
    return setter


def _set_limit(name: str) -> Callable[[ControlLoop, float], None]:
    def setter(loop: ControlLoop, value: float) -> None:
        params = loop._controller.params
        limits = {'output_min': params.output_min, 'output_max': params.output_max}
        limits[name] = value
        loop.set_output_limits(**limits)
    return setter


def _as_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return validate_real(value, "flag") > 0.5


_GETTERS: Dict[LoopParameter, Callable[[ControlLoop], Any]] = {
    LoopParameter.SETPOINT: lambda loop: loop.setpoint,
    LoopParameter.PROCESS_VARIABLE: lambda loop: loop.process_variable,
    LoopParameter.OUTPUT: lambda loop: loop.output,
    LoopParameter.ERROR: lambda loop: loop.error,
    LoopParameter.INTEGRAL: lambda loop: loop.integral,
    LoopParameter.TIME: lambda loop: loop.time,
    LoopParameter.MANUAL_OUTPUT: lambda loop: loop.manual_output,
    LoopParameter.AUTO_MODE: lambda loop: loop.auto_mode,
    LoopParameter.SETPOINT_TRACKING: lambda loop: loop.setpoint_tracking,
    LoopParameter.KP: lambda loop: loop._controller.params.kp,
    LoopParameter.KI: lambda loop: loop._controller.params.ki,
    LoopParameter.KD: lambda loop: loop._controller.params.kd,
    LoopParameter.OUTPUT_MIN: lambda loop: loop._controller.params.output_min,
    LoopParameter.OUTPUT_MAX: lambda loop: loop._controller.params.output_max,
    LoopParameter.PROCESS_GAIN: lambda loop: loop.process_gain,
    LoopParameter.TIME_CONSTANT: lambda loop: loop.time_constant,
    LoopParameter.DEAD_TIME: lambda loop: loop.dead_time,
    LoopParameter.DISTURBANCE: lambda loop: loop.disturbance,
    LoopParameter.TICK_DURATION: lambda loop: loop.tick_duration,
    LoopParameter.SPEED_MULTIPLIER: lambda loop: loop.speed_multiplier,
}

_SETTERS: Dict[LoopParameter, Callable[[ControlLoop, Any], None]] = {
    LoopParameter.SETPOINT: lambda loop, v: setattr(loop, 'setpoint', v),
    LoopParameter.MANUAL_OUTPUT: lambda loop, v: setattr(loop, 'manual_output', v),
    LoopParameter.AUTO_MODE: lambda loop, v: setattr(loop, 'auto_mode', _as_flag(v)),
    LoopParameter.SETPOINT_TRACKING: lambda loop, v: setattr(loop, 'setpoint_tracking', _as_flag(v)),
    LoopParameter.KP: _set_gain('kp'),
    LoopParameter.KI: _set_gain('ki'),
    LoopParameter.KD: _set_gain('kd'),
    LoopParameter.OUTPUT_MIN: _set_limit('output_min'),
    LoopParameter.OUTPUT_MAX: _set_limit('output_max'),
    LoopParameter.PROCESS_GAIN: lambda loop, v: setattr(loop, 'process_gain', v),
    LoopParameter.TIME_CONSTANT: lambda loop, v: setattr(loop, 'time_constant', v),
    LoopParameter.DEAD_TIME: lambda loop, v: setattr(loop, 'dead_time', v),
    LoopParameter.DISTURBANCE: lambda loop, v: setattr(loop, 'disturbance', v),
    LoopParameter.TICK_DURATION: lambda loop, v: setattr(loop, 'tick_duration', v),
    LoopParameter.SPEED_MULTIPLIER: lambda loop, v: setattr(loop, 'speed_multiplier', v),
}
