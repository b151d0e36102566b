"""
Simulation scenarios for control loop testing.

A scenario is a schedule over simulated time: what the setpoint is, how
much random disturbance the process sees (percent, the process's
disturbance factor) and when the operator flips between Automatic and
Manual. ``Simulator`` queries it once per tick.
"""

from typing import Callable, Optional, List, Dict, Any, Tuple
from dataclasses import dataclass
from enum import Enum
import numpy as np

from pid_loopsim.utils.validators import ValidationError, validate_positive


class SetpointType(Enum):
    """Shapes of setpoint schedule."""
    STEP = "step"
    RAMP = "ramp"
    SINE = "sine"
    SQUARE = "square"
    STAIRCASE = "staircase"
    CUSTOM = "custom"


class DisturbanceType(Enum):
    """Shapes of disturbance-factor schedule."""
    NONE = "none"
    STEP = "step"
    PULSE = "pulse"
    CUSTOM = "custom"


# Shape parameters read from setpoint_params / disturbance_params
SHAPE_DEFAULTS: Dict[str, float] = {
    'ramp_duration': 10.0,
    'frequency': 0.02,
    'period': 40.0,
    'n_steps': 5,
    'pulse_duration': 5.0,
}


@dataclass
class SimulationScenario:
    """
    Schedules for one simulation run.

    ``setpoint_initial`` and ``setpoint_final`` are the two levels every
    setpoint shape moves between (for SINE the trough and the crest).
    ``mode_events`` holds ``(time, auto_mode)`` pairs; they are kept sorted
    by time.
    """

    name: str
    duration: float
    tick_duration: float = 0.1

    setpoint_type: SetpointType = SetpointType.STEP
    setpoint_initial: float = 50.0
    setpoint_final: float = 70.0
    setpoint_time: float = 1.0
    setpoint_params: Optional[Dict[str, Any]] = None
    setpoint_function: Optional[Callable[[float], float]] = None

    disturbance_type: DisturbanceType = DisturbanceType.NONE
    disturbance_magnitude: float = 0.0
    disturbance_time: float = 0.0
    disturbance_params: Optional[Dict[str, Any]] = None
    disturbance_function: Optional[Callable[[float], float]] = None

    mode_events: Optional[List[Tuple[float, bool]]] = None

    def __post_init__(self):
        self.duration = validate_positive(self.duration, "duration")
        self.tick_duration = validate_positive(self.tick_duration, "tick_duration")
        for source in (self.setpoint_params, self.disturbance_params):
            for key, value in (source or {}).items():
                if key in SHAPE_DEFAULTS:
                    validate_positive(value, key)
        if self.setpoint_type is SetpointType.CUSTOM and self.setpoint_function is None:
            raise ValidationError("CUSTOM setpoint needs a setpoint_function")
        if self.mode_events:
            self.mode_events = sorted(self.mode_events, key=lambda event: event[0])

    def _shape(self, params: Optional[Dict[str, Any]], key: str) -> float:
        return (params or {}).get(key, SHAPE_DEFAULTS[key])

    # ------------------------------------------------------------------
    # Setpoint
    # ------------------------------------------------------------------

    def get_setpoint(self, t: float) -> float:
        """Setpoint at simulated time t."""
        if self.setpoint_function is not None:
            return self.setpoint_function(t)
        return _SETPOINT_SHAPES[self.setpoint_type](self, t)

    def _step_setpoint(self, t: float) -> float:
        return self.setpoint_final if t >= self.setpoint_time else self.setpoint_initial

    def _ramp_setpoint(self, t: float) -> float:
        length = self._shape(self.setpoint_params, 'ramp_duration')
        fraction = min(max((t - self.setpoint_time) / length, 0.0), 1.0)
        return self.setpoint_initial + fraction * (self.setpoint_final - self.setpoint_initial)

    def _sine_setpoint(self, t: float) -> float:
        frequency = self._shape(self.setpoint_params, 'frequency')
        middle = (self.setpoint_final + self.setpoint_initial) / 2
        half_span = (self.setpoint_final - self.setpoint_initial) / 2
        return float(middle + half_span * np.sin(2 * np.pi * frequency * t))

    def _square_setpoint(self, t: float) -> float:
        half_period = self._shape(self.setpoint_params, 'period') / 2
        # Starts on the high level
        high = int(t // half_period) % 2 == 0
        return self.setpoint_final if high else self.setpoint_initial

    def _staircase_setpoint(self, t: float) -> float:
        n_steps = int(self._shape(self.setpoint_params, 'n_steps'))
        if n_steps == 1:
            return self.setpoint_initial
        stair = min(int(t * n_steps / self.duration), n_steps - 1)
        rise = (self.setpoint_final - self.setpoint_initial) / (n_steps - 1)
        return self.setpoint_initial + stair * rise

    # ------------------------------------------------------------------
    # Disturbance and mode
    # ------------------------------------------------------------------

    def get_disturbance(self, t: float) -> float:
        """Disturbance factor (percent) at simulated time t."""
        if self.disturbance_function is not None:
            return self.disturbance_function(t)
        if self.disturbance_type is DisturbanceType.STEP:
            active = t >= self.disturbance_time
        elif self.disturbance_type is DisturbanceType.PULSE:
            width = self._shape(self.disturbance_params, 'pulse_duration')
            active = self.disturbance_time <= t < self.disturbance_time + width
        else:
            active = False
        return self.disturbance_magnitude if active else 0.0

    def get_auto_mode(self, t: float) -> Optional[bool]:
        """Mode requested by the latest event at or before t, None if no event yet."""
        mode = None
        for event_time, auto_mode in self.mode_events or ():
            if event_time > t:
                break
            mode = auto_mode
        return mode

    @property
    def has_disturbance(self) -> bool:
        return self.disturbance_function is not None or self.disturbance_type is not DisturbanceType.NONE


_SETPOINT_SHAPES: Dict[SetpointType, Callable[[SimulationScenario, float], float]] = {
    SetpointType.STEP: SimulationScenario._step_setpoint,
    SetpointType.RAMP: SimulationScenario._ramp_setpoint,
    SetpointType.SINE: SimulationScenario._sine_setpoint,
    SetpointType.SQUARE: SimulationScenario._square_setpoint,
    SetpointType.STAIRCASE: SimulationScenario._staircase_setpoint,
}


class ScenarioLibrary:
    """Ready-made scenarios around the 50% operating point."""

    @staticmethod
    def step_response(
        initial: float = 50.0,
        final: float = 70.0,
        duration: float = 60.0,
        tick_duration: float = 0.1
    ) -> SimulationScenario:
        """Setpoint step one second in."""
        return SimulationScenario(
            "Step Response", duration, tick_duration,
            setpoint_initial=initial, setpoint_final=final,
        )

    @staticmethod
    def step_with_disturbance(
        initial: float = 50.0,
        final: float = 70.0,
        disturbance: float = 5.0,
        duration: float = 90.0,
        tick_duration: float = 0.1
    ) -> SimulationScenario:
        """Setpoint step, then random disturbance from halfway on."""
        return SimulationScenario(
            "Step with Disturbance", duration, tick_duration,
            setpoint_initial=initial, setpoint_final=final,
            disturbance_type=DisturbanceType.STEP,
            disturbance_magnitude=disturbance,
            disturbance_time=duration / 2,
        )

    @staticmethod
    def ramp_tracking(
        initial: float = 50.0,
        final: float = 80.0,
        ramp_duration: float = 30.0,
        duration: float = 90.0,
        tick_duration: float = 0.1
    ) -> SimulationScenario:
        """Linear setpoint ramp starting at 5 s."""
        return SimulationScenario(
            "Ramp Tracking", duration, tick_duration,
            setpoint_type=SetpointType.RAMP,
            setpoint_initial=initial, setpoint_final=final, setpoint_time=5.0,
            setpoint_params={'ramp_duration': ramp_duration},
        )

    @staticmethod
    def tracking_sine(
        amplitude: float = 10.0,
        frequency: float = 0.02,
        offset: float = 50.0,
        duration: float = 120.0,
        tick_duration: float = 0.1
    ) -> SimulationScenario:
        """Sinusoidal setpoint centred on ``offset``."""
        return SimulationScenario(
            "Sine Tracking", duration, tick_duration,
            setpoint_type=SetpointType.SINE,
            setpoint_initial=offset - amplitude, setpoint_final=offset + amplitude,
            setpoint_params={'frequency': frequency},
        )

    @staticmethod
    def staircase_test(
        min_value: float = 30.0,
        max_value: float = 70.0,
        n_steps: int = 5,
        duration: float = 200.0,
        tick_duration: float = 0.1
    ) -> SimulationScenario:
        """Equal setpoint stairs from ``min_value`` up to ``max_value``."""
        return SimulationScenario(
            "Staircase Test", duration, tick_duration,
            setpoint_type=SetpointType.STAIRCASE,
            setpoint_initial=min_value, setpoint_final=max_value,
            setpoint_params={'n_steps': n_steps},
        )

    @staticmethod
    def aggressive_setpoint_changes(
        low: float = 40.0,
        high: float = 60.0,
        period: float = 40.0,
        duration: float = 160.0,
        tick_duration: float = 0.1
    ) -> SimulationScenario:
        """Square-wave setpoint between ``low`` and ``high``."""
        return SimulationScenario(
            "Aggressive Setpoint Changes", duration, tick_duration,
            setpoint_type=SetpointType.SQUARE,
            setpoint_initial=low, setpoint_final=high,
            setpoint_params={'period': period},
        )

    @staticmethod
    def manual_auto_transfer(
        setpoint: float = 60.0,
        manual_at: float = 10.0,
        auto_at: float = 30.0,
        duration: float = 90.0,
        tick_duration: float = 0.1
    ) -> SimulationScenario:
        """Operator takes Manual, then hands back to Automatic with a new setpoint."""
        return SimulationScenario(
            "Manual/Auto Transfer", duration, tick_duration,
            setpoint_final=setpoint, setpoint_time=auto_at,
            mode_events=[(manual_at, False), (auto_at, True)],
        )

    @staticmethod
    def custom(
        name: str,
        duration: float,
        setpoint_func: Callable[[float], float],
        disturbance_func: Optional[Callable[[float], float]] = None,
        mode_events: Optional[List[Tuple[float, bool]]] = None,
        tick_duration: float = 0.1
    ) -> SimulationScenario:
        """Scenario driven by caller-supplied schedules."""
        return SimulationScenario(
            name, duration, tick_duration,
            setpoint_type=SetpointType.CUSTOM,
            setpoint_initial=setpoint_func(0.0),
            setpoint_function=setpoint_func,
            disturbance_type=DisturbanceType.CUSTOM if disturbance_func else DisturbanceType.NONE,
            disturbance_function=disturbance_func,
            mode_events=mode_events,
        )
