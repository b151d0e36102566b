"""
Mathematical helpers shared by the controller and process models.
"""

from typing import Optional
import math
import numpy as np


# Below this magnitude a gain is treated as zero
GAIN_EPSILON = 1e-9

# Tolerance when comparing accumulated simulation timestamps
TIME_EPSILON = 1e-9


def clamp(value: float, min_val: Optional[float], max_val: Optional[float]) -> float:
    """Clamp a value between minimum and maximum bounds."""
    if min_val is None and max_val is None:
        return float(value)
    return float(np.clip(value, min_val, max_val))


def is_negligible(value: float, epsilon: float = GAIN_EPSILON) -> bool:
    """True if |value| is too small to divide by."""
    return abs(value) <= epsilon


def safe_divisor(value: float, epsilon: float = GAIN_EPSILON) -> float:
    """Floor a non-negative divisor at epsilon."""
    return max(value, epsilon)


def buffer_length(dead_time: float, sample_time: float) -> int:
    """Number of samples needed to look back dead_time seconds: ceil(Td/dt) + 1."""
    if dead_time <= 0:
        return 1
    ratio = dead_time / sample_time
    # 1.0 / 0.1 must give 10, not 11
    nearest = round(ratio)
    if abs(ratio - nearest) < 1e-9:
        ratio = nearest
    return int(math.ceil(ratio)) + 1
