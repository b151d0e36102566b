"""
Dead-time (pure transport delay) buffer.
"""

from typing import List, NamedTuple
from collections import deque

from pid_loopsim.utils.math_utils import TIME_EPSILON, buffer_length
from pid_loopsim.utils.validators import validate_non_negative, validate_positive


class DelayedSample(NamedTuple):
    """One time-stamped entry of the delay line."""
    time: float
    value: float


class DeadTimeBuffer:
    """
    Fixed-horizon delay line for a scalar signal.

    Keeps every time-stamped sample younger than ``dead_time`` plus the
    newest one at or before that horizon, so the value pushed exactly
    ``dead_time`` seconds ago is always available. The buffer is bounded by
    time rather than by count: ticks shorter than ``sample_time`` only make
    it hold more samples. At ``sample_time`` it holds ``capacity`` entries.

    Example:
        >>> buf = DeadTimeBuffer(dead_time=0.2, sample_time=0.1)
        >>> buf.seed(value=5.0, now=0.0)
        >>> buf.push(0.0, 7.0)
        >>> buf.delayed_value(-0.2, default=7.0)
        5.0
    """

    def __init__(self, dead_time: float = 0.0, sample_time: float = 0.1):
        self._dead_time = validate_non_negative(dead_time, "dead_time")
        self._dt = validate_positive(sample_time, "sample_time")
        self._samples: deque = deque()

    @property
    def dead_time(self) -> float:
        return self._dead_time

    @property
    def sample_time(self) -> float:
        return self._dt

    @property
    def capacity(self) -> int:
        """Samples retained when ticking at ``sample_time``: ceil(Td / dt) + 1."""
        return buffer_length(self._dead_time, self._dt)

    def configure(self, dead_time: float, sample_time: float) -> None:
        """
        Change the horizon. The buffer is emptied; call ``seed`` afterwards.
        """
        dead_time = validate_non_negative(dead_time, "dead_time")
        sample_time = validate_positive(sample_time, "sample_time")
        self._dead_time = dead_time
        self._dt = sample_time
        self._samples = deque()

    def seed(self, value: float, now: float) -> None:
        """
        Fill the horizon before ``now`` with a constant value.

        After seeding, every lookup up to ``dead_time`` in the past returns
        ``value``, so a process starting at steady state sees no stale history.
        """
        self._samples.clear()
        n_samples = max(self.capacity - 1, 1)
        for k in range(n_samples, 0, -1):
            self._samples.append(DelayedSample(now - k * self._dt, value))

    def push(self, time: float, value: float) -> None:
        """Append a sample and drop entries no later lookup can return."""
        self._samples.append(DelayedSample(time, value))
        # Later lookups target at least time - dead_time; the newest sample at
        # or before that point is still needed
        cutoff = time - self._dead_time + TIME_EPSILON
        while len(self._samples) > 1 and self._samples[1].time <= cutoff:
            self._samples.popleft()

    def delayed_value(self, target_time: float, default: float) -> float:
        """
        Most recent sample with timestamp <= target_time.

        Args:
            target_time: Time to look up, usually ``now - dead_time``
            default: Returned when dead time is zero, the buffer is empty
                or no sample is old enough

        Returns:
            Delayed signal value
        """
        if self._dead_time <= 0 or not self._samples:
            return default
        for sample in reversed(self._samples):
            if sample.time <= target_time + TIME_EPSILON:
                return sample.value
        return default

    def clear(self) -> None:
        self._samples.clear()

    def samples(self) -> List[DelayedSample]:
        """Copy of the buffered samples, oldest first."""
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __repr__(self) -> str:
        return (
            f"DeadTimeBuffer(dead_time={self._dead_time}, sample_time={self._dt}, "
            f"size={len(self._samples)}/{self.capacity})"
        )
