"""
PID Controller Parameters Configuration.
Encapsulates gains, output limits and algorithm selection in a validated structure.
"""

from dataclasses import dataclass
from typing import Dict, Any
from enum import Enum
import json

from pid_loopsim.utils.validators import (
    ValidationError,
    validate_non_negative,
    validate_limits,
)


class PIDAlgorithm(Enum):
    """Where each PID term takes its input from."""
    BASIC_PID = "basic_pid"  # P, I and D all act on error
    I_PD = "i_pd"  # I on error, P and D on measurement (no proportional or derivative kick)
    PI_D = "pi_d"  # P and I on error, D on measurement (no derivative kick)


class ControllerMode(Enum):
    """Controller operating mode."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"


@dataclass
class PIDParams:
    """
    PID Controller Parameters.

    Gains are in parallel form: MV = Kp*e + Ki*integral(e) + Kd*de/dt.
    Output limits also bound the integral term while anti-windup is enabled.
    """

    # Core gains
    kp: float = 1.0  # Proportional gain
    ki: float = 0.0  # Integral gain
    kd: float = 0.0  # Derivative gain

    # Output limits (saturation)
    output_min: float = 0.0
    output_max: float = 100.0

    # Clamp the integral sum so Ki*sum stays inside the output limits
    anti_windup: bool = True

    algorithm: PIDAlgorithm = PIDAlgorithm.BASIC_PID

    def __post_init__(self):
        """Validate parameters after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate all parameters."""
        self.kp = validate_non_negative(self.kp, "kp")
        self.ki = validate_non_negative(self.ki, "ki")
        self.kd = validate_non_negative(self.kd, "kd")
        self.output_min, self.output_max = validate_limits(
            self.output_min, self.output_max, "output limits"
        )
        if not isinstance(self.algorithm, PIDAlgorithm):
            raise ValidationError(f"algorithm must be a PIDAlgorithm, got {self.algorithm!r}")
        self.anti_windup = bool(self.anti_windup)

    def copy(self, **changes) -> 'PIDParams':
        """
        Create a copy with optional parameter changes.

        Args:
            **changes: Parameters to override

        Returns:
            New PIDParams instance
        """
        params = {
            'kp': self.kp,
            'ki': self.ki,
            'kd': self.kd,
            'output_min': self.output_min,
            'output_max': self.output_max,
            'anti_windup': self.anti_windup,
            'algorithm': self.algorithm,
        }
        params.update(changes)
        return PIDParams(**params)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'kp': self.kp,
            'ki': self.ki,
            'kd': self.kd,
            'output_min': self.output_min,
            'output_max': self.output_max,
            'anti_windup': self.anti_windup,
            'algorithm': self.algorithm.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PIDParams':
        """
        Create from dictionary.

        Args:
            data: Dictionary of parameters

        Returns:
            PIDParams instance
        """
        data = data.copy()

        # Convert enum strings to enums
        if 'algorithm' in data and isinstance(data['algorithm'], str):
            data['algorithm'] = PIDAlgorithm(data['algorithm'])

        return cls(**data)

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> 'PIDParams':
        """Create from JSON string."""
        return cls.from_dict(json.loads(json_str))

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"PIDParams(Kp={self.kp:.4f}, Ki={self.ki:.4f}, Kd={self.kd:.4f}, "
            f"limits=[{self.output_min}, {self.output_max}], "
            f"algorithm={self.algorithm.value}, anti_windup={self.anti_windup})"
        )


# Preset configurations
class PIDPresets:
    """Common PID parameter presets for a process with time constant near 10 s."""

    @staticmethod
    def aggressive() -> PIDParams:
        """Fast response, may have overshoot."""
        return PIDParams(kp=2.0, ki=0.3, kd=0.2)

    @staticmethod
    def moderate() -> PIDParams:
        """Balanced response."""
        return PIDParams(kp=1.0, ki=0.1, kd=0.05)

    @staticmethod
    def conservative() -> PIDParams:
        """Slow, stable response."""
        return PIDParams(kp=0.5, ki=0.05, kd=0.0)

    @staticmethod
    def pi_only() -> PIDParams:
        """PI controller (no derivative)."""
        return PIDParams(kp=1.0, ki=0.1, kd=0.0)
