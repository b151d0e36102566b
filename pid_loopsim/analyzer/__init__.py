"""Performance analysis of control loop runs."""

from pid_loopsim.analyzer.metrics import (
    PerformanceMetrics,
    StepResponseMetrics,
    ErrorMetrics,
    ControlEffortMetrics,
)

__all__ = [
    "PerformanceMetrics",
    "StepResponseMetrics",
    "ErrorMetrics",
    "ControlEffortMetrics",
]
