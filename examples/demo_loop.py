#!/usr/bin/env python3
"""
Interactive Control Loop Demo

Drives a ControlLoop tick by tick the way a timer callback would:
- Setpoint change in Automatic
- Bumpless switch to Manual and back
- Reset keeping the operating point
- Process parameter change while running
- Diagnostic report
"""

import logging
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pid_loopsim.simulation.loop import ControlLoop, LoopParameter
from pid_loopsim.simulation.diagnostics import generate_report


def show(loop: ControlLoop, label: str) -> None:
    s = loop.snapshot()
    mode = "AUTO" if s.auto_mode else "MAN "
    print(
        f"{label:28s} t={s.time:6.1f}s {mode} SP={s.setpoint:6.2f} "
        f"PV={s.process_variable:6.2f} MV={s.output:6.2f}"
    )


def main():
    print("=" * 60)
    print("Interactive Control Loop Demo")
    print("=" * 60)

    with ControlLoop(seed=0, history_size=2000) as loop:
        show(loop, "Initialized")

        loop.setpoint = 70.0
        loop.run(300)
        show(loop, "30s after SP 50 -> 70")

        loop.auto_mode = False
        show(loop, "Switched to Manual")
        loop.manual_output = 40.0
        loop.run(200)
        show(loop, "20s at MV 40")

        loop.auto_mode = True
        loop.run(400)
        show(loop, "40s back in Automatic")

        loop.reset()
        show(loop, "After reset")

        loop.set_value(LoopParameter.DEAD_TIME, 3.0)
        loop.set_value(LoopParameter.DISTURBANCE, 5.0)
        loop.run(300)
        show(loop, "Td=3s, 5% disturbance")

        loop.speed_multiplier = 5.0
        loop.run(100)
        show(loop, "100 ticks at 5x speed")

        pv = loop.history.get_column('process_variable')
        print(f"\nHistory: {len(pv)} ticks, PV range [{pv.min():.2f}, {pv.max():.2f}]")

        print("\nSuggested tunings for the current process:")
        for rule, gains in loop.tuning_suggestions().items():
            print(f"  {rule:18s} Kp={gains['kp']:.3f} Ki={gains['ki']:.4f} Kd={gains['kd']:.3f}")

        print()
        print(generate_report(loop))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    main()
