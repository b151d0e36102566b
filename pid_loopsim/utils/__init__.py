"""Utility functions and helpers."""

from pid_loopsim.utils.validators import (
    ValidationError,
    validate_real,
    validate_positive,
    validate_non_negative,
    validate_limits,
)
from pid_loopsim.utils.math_utils import clamp, is_negligible, safe_divisor, buffer_length

__all__ = [
    "ValidationError",
    "validate_real",
    "validate_positive",
    "validate_non_negative",
    "validate_limits",
    "clamp",
    "is_negligible",
    "safe_divisor",
    "buffer_length",
]
