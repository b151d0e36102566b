"""
Plain-text diagnostic reports for a running control loop.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union
import logging

from pid_loopsim.simulation.loop import ControlLoop, LoopParameter
from pid_loopsim.utils.math_utils import GAIN_EPSILON

logger = logging.getLogger(__name__)


def _checks(loop: ControlLoop) -> List[str]:
    lines = []
    snapshot = loop.snapshot()
    config = loop.config
    low, high = loop.integral_limits

    lines.append(f"Mode: {'Automatic' if snapshot.auto_mode else 'Manual'}")
    lines.append(f"Algorithm: {snapshot.algorithm}")
    lines.append(f"Error: {snapshot.error:.6g}")

    if snapshot.saturated:
        lines.append("WARNING: controller output is at a limit")
    if config.controller.anti_windup and config.controller.ki > GAIN_EPSILON:
        if snapshot.integral_sum <= low or snapshot.integral_sum >= high:
            lines.append("WARNING: integral sum is clamped by anti-windup")
    if abs(loop.process_gain) <= GAIN_EPSILON:
        lines.append("WARNING: process gain is zero, PV does not respond to MV")
    if not snapshot.auto_mode and loop.setpoint_tracking:
        lines.append("Setpoint is tracking the process variable")
    if not lines[3:]:
        lines.append("OK")
    return lines


def generate_report(loop: ControlLoop) -> str:
    """
    Build a human-readable report of the loop's key values.

    Args:
        loop: Loop to inspect

    Returns:
        Multi-line report text
    """
    lines = [
        "=== Control Loop Diagnostic Report ===",
        f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}",
        f"Loop: {loop.name}",
        f"Ticks: {loop.tick_count}",
        "",
        "=== KEY VALUES ===",
    ]
    for parameter in LoopParameter:
        value = loop.get_value(parameter)
        if isinstance(value, float):
            value = f"{value:.6g}"
        lines.append(f"{parameter.value}: {value}")

    lines.append(f"delayed_input: {loop.delayed_input:.6g}")
    lines.append(f"algorithm: {loop.algorithm.value}")

    lines.extend(["", "=== CHECKS ==="])
    lines.extend(_checks(loop))
    return "\n".join(lines) + "\n"


def save_report(
    loop: ControlLoop,
    path: Optional[Union[str, Path]] = None,
    directory: Optional[Union[str, Path]] = None
) -> Path:
    """
    Write the diagnostic report to a text file.

    Args:
        loop: Loop to inspect
        path: Target file; a timestamped name in ``directory`` if None
        directory: Directory for the generated name (current directory if None)

    Returns:
        Path of the written report

    Raises:
        RuntimeError: If the file cannot be written
    """
    if path is None:
        file_name = f"loop_diagnostic_{datetime.now():%Y%m%d_%H%M%S}.txt"
        path = Path(directory or ".") / file_name
    path = Path(path)

    report = generate_report(loop)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report, encoding="utf-8")
    except OSError as exc:
        raise RuntimeError(f"Failed to write diagnostic report to {path}: {exc}") from exc

    logger.info("Diagnostic report saved to %s", path)
    return path
