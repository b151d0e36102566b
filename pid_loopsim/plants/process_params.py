"""
Process model parameters and the process factory.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional
from enum import Enum
import json

from pid_loopsim.utils.math_utils import clamp
from pid_loopsim.utils.validators import validate_positive, validate_real


# Smallest time constant the Euler integration accepts
MIN_TIME_CONSTANT = 0.1

DISTURBANCE_MIN = 0.0
DISTURBANCE_MAX = 100.0


class ProcessKind(Enum):
    """Supported process shapes."""
    FIRST_ORDER = "first_order"
    FIRST_ORDER_DEAD_TIME = "first_order_dead_time"


@dataclass
class ProcessParams:
    """
    Physical constants of a first-order-plus-dead-time process.

    Out-of-range time constant, dead time and disturbance factor are
    clamped; a non-positive sample time is rejected.
    """

    gain: float = 1.0  # K
    time_constant: float = 10.0  # tau, seconds
    dead_time: float = 1.0  # Td, seconds
    disturbance: float = 0.0  # Disturbance factor, percent
    sample_time: float = 0.1  # Euler step, seconds

    def __post_init__(self):
        self.gain = validate_real(self.gain, "gain")
        self.time_constant = max(MIN_TIME_CONSTANT, validate_real(self.time_constant, "time_constant"))
        self.dead_time = max(0.0, validate_real(self.dead_time, "dead_time"))
        self.disturbance = clamp(
            validate_real(self.disturbance, "disturbance"), DISTURBANCE_MIN, DISTURBANCE_MAX
        )
        self.sample_time = validate_positive(self.sample_time, "sample_time")

    def copy(self, **changes) -> 'ProcessParams':
        """Create a copy with optional parameter changes."""
        params = self.to_dict()
        params.update(changes)
        return ProcessParams(**params)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'gain': self.gain,
            'time_constant': self.time_constant,
            'dead_time': self.dead_time,
            'disturbance': self.disturbance,
            'sample_time': self.sample_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProcessParams':
        return cls(**data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> 'ProcessParams':
        return cls.from_dict(json.loads(json_str))


def create_process(
    kind: ProcessKind = ProcessKind.FIRST_ORDER_DEAD_TIME,
    params: Optional[ProcessParams] = None,
    seed: Optional[int] = None,
):
    """
    Build a process model of the given kind.

    Args:
        kind: Process shape; FIRST_ORDER forces zero dead time
        params: Physical constants (defaults if None)
        seed: Seed for the disturbance random source

    Returns:
        FOPDTProcess instance
    """
    # Imported here, first_order imports this module
    from pid_loopsim.plants.first_order import FOPDTProcess

    params = params if params is not None else ProcessParams()
    if kind is ProcessKind.FIRST_ORDER:
        params = params.copy(dead_time=0.0)
    elif kind is not ProcessKind.FIRST_ORDER_DEAD_TIME:
        raise ValueError(f"Unknown process kind: {kind!r}")
    return FOPDTProcess.from_params(params, seed=seed)
