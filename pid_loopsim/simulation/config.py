"""
Loop configuration: controller, process and timing in one serializable structure.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional
import json

from pid_loopsim.core.pid_params import PIDParams
from pid_loopsim.plants.process_params import ProcessParams
from pid_loopsim.utils.math_utils import clamp
from pid_loopsim.utils.validators import validate_positive, validate_real


SPEED_MIN = 0.1
SPEED_MAX = 5.0


def _default_controller() -> PIDParams:
    return PIDParams(kp=1.0, ki=0.1, kd=0.05, output_min=0.0, output_max=100.0)


@dataclass
class LoopConfig:
    """
    Complete configuration of a simulated control loop.

    The process ``sample_time`` is ignored by the loop, which steps the
    process by ``tick_duration * speed_multiplier``.
    """

    controller: PIDParams = field(default_factory=_default_controller)
    process: ProcessParams = field(default_factory=ProcessParams)

    tick_duration: float = 0.1  # seconds per tick at 1x speed
    speed_multiplier: float = 1.0  # clamped to [0.1, 5.0]

    setpoint_tracking: bool = False  # SP follows PV while in Manual
    auto_mode: bool = True

    # Steady PV to start from; midpoint of the output range if None
    operating_point: Optional[float] = None

    def __post_init__(self):
        if not isinstance(self.controller, PIDParams):
            raise TypeError("controller must be PIDParams")
        if not isinstance(self.process, ProcessParams):
            raise TypeError("process must be ProcessParams")
        self.tick_duration = validate_positive(self.tick_duration, "tick_duration")
        self.speed_multiplier = clamp(
            validate_real(self.speed_multiplier, "speed_multiplier"), SPEED_MIN, SPEED_MAX
        )
        self.setpoint_tracking = bool(self.setpoint_tracking)
        self.auto_mode = bool(self.auto_mode)
        if self.operating_point is not None:
            self.operating_point = validate_real(self.operating_point, "operating_point")

    @property
    def effective_step(self) -> float:
        """Simulated seconds per tick."""
        return self.tick_duration * self.speed_multiplier

    def copy(self, **changes) -> 'LoopConfig':
        params = {
            'controller': self.controller,
            'process': self.process,
            'tick_duration': self.tick_duration,
            'speed_multiplier': self.speed_multiplier,
            'setpoint_tracking': self.setpoint_tracking,
            'auto_mode': self.auto_mode,
            'operating_point': self.operating_point,
        }
        params.update(changes)
        return LoopConfig(**params)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'controller': self.controller.to_dict(),
            'process': self.process.to_dict(),
            'tick_duration': self.tick_duration,
            'speed_multiplier': self.speed_multiplier,
            'setpoint_tracking': self.setpoint_tracking,
            'auto_mode': self.auto_mode,
            'operating_point': self.operating_point,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoopConfig':
        """
        Create from dictionary; nested controller/process may be dicts.
        """
        data = data.copy()
        if isinstance(data.get('controller'), dict):
            data['controller'] = PIDParams.from_dict(data['controller'])
        if isinstance(data.get('process'), dict):
            data['process'] = ProcessParams.from_dict(data['process'])
        return cls(**data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> 'LoopConfig':
        return cls.from_dict(json.loads(json_str))
