"""
Validation utilities for parameter checking.
Setters in the controller, process and loop reject bad input through these
helpers so that a failed call never leaves partial state behind.
"""

import math
import numbers


class ValidationError(ValueError):
    """Raised when an argument is rejected."""
    pass


def validate_real(value: float, name: str) -> float:
    """
    Validate that a value is a finite real number.
    
    Args:
        value: The value to validate
        name: Parameter name for error messages
        
    Returns:
        The value as float
        
    Raises:
        ValidationError: If value is not a finite real number
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(f"{name} must be a real number, got {type(value).__name__}")
    value = float(value)
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value}")
    return value


def validate_positive(value: float, name: str) -> float:
    """
    Validate that a value is strictly positive.
    
    Raises:
        ValidationError: If value is not positive
    """
    value = validate_real(value, name)
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")
    return value


def validate_non_negative(value: float, name: str) -> float:
    """
    Validate that a value is non-negative (>= 0).
    
    Raises:
        ValidationError: If value is negative
    """
    value = validate_real(value, name)
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value}")
    return value


def validate_limits(low: float, high: float, name: str = "limits") -> tuple:
    """
    Validate an ordered (low, high) pair.
    
    Raises:
        ValidationError: If low is not strictly below high
    """
    low = validate_real(low, f"{name} minimum")
    high = validate_real(high, f"{name} maximum")
    if low >= high:
        raise ValidationError(
            f"{name} minimum must be less than maximum, got [{low}, {high}]"
        )
    return low, high

