"""
Performance metrics for control loop runs.

A loop runs around an operating point, so step metrics are expressed as
fractions of the step actually commanded: the response is normalized to
``progress = (PV - PV0) / (SP_final - PV0)`` and every band, crossing and
overshoot is read off that curve. Times are measured from the last
setpoint change.
"""

from typing import Dict, Any, Optional, Tuple
from dataclasses import dataclass, asdict
import numpy as np

# Fraction of the step below which a move counts as "no step"
STEP_EPSILON = 1e-10


@dataclass
class StepResponseMetrics:
    """Metrics from step response analysis (times relative to the step)."""
    rise_time: float
    settling_time_2pct: float
    settling_time_5pct: float
    overshoot_percent: float
    undershoot_percent: float
    peak_time: float
    peak_value: float
    steady_state_value: float
    steady_state_error: float

    def to_dict(self) -> Dict[str, float]:
        return {key: float(value) for key, value in asdict(self).items()}


@dataclass
class ErrorMetrics:
    """Integral and statistical error measures."""
    iae: float
    ise: float
    itae: float
    itse: float
    mae: float
    mse: float
    rmse: float
    max_error: float

    def to_dict(self) -> Dict[str, float]:
        return {key: float(value) for key, value in asdict(self).items()}


@dataclass
class ControlEffortMetrics:
    """How hard the controller worked."""
    total_variation: float
    mean_absolute: float
    max_absolute: float
    rms: float
    saturation_time: float  # fraction of samples at a limit

    def to_dict(self) -> Dict[str, float]:
        return {key: float(value) for key, value in asdict(self).items()}


def _as_arrays(*signals) -> Tuple[np.ndarray, ...]:
    arrays = tuple(np.asarray(signal, dtype=float) for signal in signals)
    if len(arrays[0]) < 2:
        raise ValueError("Need at least 2 data points")
    return arrays


def _step_start(setpoints: np.ndarray) -> int:
    """Index of the last setpoint change, 0 if the setpoint never moves."""
    changes = np.flatnonzero(np.diff(setpoints) != 0)
    if len(changes) == 0:
        return 0
    start = int(changes[-1]) + 1
    # A change on the final sample leaves nothing to analyze
    return start if start < len(setpoints) - 1 else 0


def _crossing_time(times: np.ndarray, progress: np.ndarray, level: float) -> float:
    """First time the progress curve reaches ``level``, linearly interpolated."""
    reached = progress >= level
    if not np.any(reached):
        return float('nan')
    k = int(np.argmax(reached))
    if k == 0:
        return float(times[0])
    p0, p1 = progress[k - 1], progress[k]
    fraction = (level - p0) / (p1 - p0)
    return float(times[k - 1] + fraction * (times[k] - times[k - 1]))


def _settling_time(times: np.ndarray, progress: np.ndarray, band: float) -> float:
    """Time from which progress stays within 1 +/- band; NaN if it never settles."""
    outside = np.flatnonzero(np.abs(progress - 1.0) > band)
    if len(outside) == 0:
        return float(times[0])
    last = int(outside[-1])
    if last == len(times) - 1:
        return float('nan')
    return float(times[last + 1])


class PerformanceMetrics:
    """Performance metrics calculator."""

    def calculate_step_response_metrics(
        self,
        timestamps: np.ndarray,
        setpoints: np.ndarray,
        measurements: np.ndarray,
        initial_value: Optional[float] = None
    ) -> StepResponseMetrics:
        """
        Calculate step response metrics for the last setpoint change.

        Args:
            timestamps: Sample times
            setpoints: Setpoint per sample
            measurements: Process variable per sample
            initial_value: PV before the step (PV at the step if None)

        Raises:
            ValueError: With fewer than 2 samples
        """
        timestamps, setpoints, measurements = _as_arrays(timestamps, setpoints, measurements)

        start = _step_start(setpoints)
        times = timestamps[start:] - timestamps[start]
        pv = measurements[start:]
        target = setpoints[-1]
        pv0 = measurements[start] if initial_value is None else float(initial_value)

        n_tail = max(1, len(pv) // 10)
        steady_state_value = float(np.mean(pv[-n_tail:]))
        delta = target - pv0

        if abs(delta) < STEP_EPSILON:
            return StepResponseMetrics(
                rise_time=0.0, settling_time_2pct=0.0, settling_time_5pct=0.0,
                overshoot_percent=0.0, undershoot_percent=0.0, peak_time=0.0,
                peak_value=pv[-1], steady_state_value=steady_state_value,
                steady_state_error=target - steady_state_value
            )

        # Same shape for rising and falling steps
        progress = (pv - pv0) / delta
        peak = int(np.argmax(progress))
        overshoot = max(0.0, progress[peak] - 1.0) * 100
        undershoot = 0.0
        if peak < len(progress) - 1:
            undershoot = max(0.0, 1.0 - float(np.min(progress[peak + 1:]))) * 100

        return StepResponseMetrics(
            rise_time=_crossing_time(times, progress, 0.9) - _crossing_time(times, progress, 0.1),
            settling_time_2pct=_settling_time(times, progress, 0.02),
            settling_time_5pct=_settling_time(times, progress, 0.05),
            overshoot_percent=overshoot,
            undershoot_percent=undershoot,
            peak_time=times[peak],
            peak_value=pv[peak],
            steady_state_value=steady_state_value,
            steady_state_error=target - steady_state_value
        )

    def calculate_error_metrics(self, timestamps: np.ndarray, setpoints: np.ndarray,
                                measurements: np.ndarray) -> ErrorMetrics:
        """IAE, ISE, ITAE and ITSE over the run plus sample statistics."""
        timestamps, setpoints, measurements = _as_arrays(timestamps, setpoints, measurements)
        errors = setpoints - measurements
        magnitude = np.abs(errors)
        squared = errors ** 2
        elapsed = timestamps - timestamps[0]

        return ErrorMetrics(
            iae=np.trapezoid(magnitude, timestamps),
            ise=np.trapezoid(squared, timestamps),
            itae=np.trapezoid(elapsed * magnitude, timestamps),
            itse=np.trapezoid(elapsed * squared, timestamps),
            mae=np.mean(magnitude),
            mse=np.mean(squared),
            rmse=np.sqrt(np.mean(squared)),
            max_error=np.max(magnitude)
        )

    def calculate_control_effort_metrics(self, timestamps: np.ndarray, outputs: np.ndarray,
                                         output_limits: Optional[Tuple[float, float]] = None) -> ControlEffortMetrics:
        """Output movement and time spent against the output limits."""
        timestamps, outputs = _as_arrays(timestamps, outputs)

        saturation_time = 0.0
        if output_limits is not None:
            low, high = output_limits
            at_limits = (outputs <= low + STEP_EPSILON) | (outputs >= high - STEP_EPSILON)
            saturation_time = np.mean(at_limits)

        return ControlEffortMetrics(
            total_variation=np.sum(np.abs(np.diff(outputs))),
            mean_absolute=np.mean(np.abs(outputs)),
            max_absolute=np.max(np.abs(outputs)),
            rms=np.sqrt(np.mean(outputs ** 2)),
            saturation_time=saturation_time
        )

    def calculate_all_metrics(self, timestamps: np.ndarray, setpoints: np.ndarray,
                              measurements: np.ndarray, outputs: np.ndarray,
                              output_limits: Optional[Tuple[float, float]] = None) -> Dict[str, Any]:
        """Step response, error and control effort metrics as plain dicts."""
        return {
            'step_response': self.calculate_step_response_metrics(timestamps, setpoints, measurements).to_dict(),
            'error': self.calculate_error_metrics(timestamps, setpoints, measurements).to_dict(),
            'control_effort': self.calculate_control_effort_metrics(timestamps, outputs, output_limits).to_dict(),
        }
