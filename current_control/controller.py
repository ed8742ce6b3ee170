"""Position feedback controller producing a goal current command.

The controller sits between the trajectory generator and the register
client: it compares the reference position with the measured position and
produces a bounded, integer goal current in the actuator's native unit.
"""

import math
from enum import Enum
from typing import Dict, Optional


class DerivativeSource(Enum):
    """Input of the derivative term."""

    ERROR = "error"
    """d(error)/dt, damping tracking error changes."""

    VELOCITY = "velocity"
    """Measured velocity dx/dt, subtracted (damps motion itself)."""


class CurrentController:
    """PD (optionally PID) position controller with a clamped current output.

    Control law (ERROR source):
        u = Kp * e + Kd * (e - e_prev) / dt + Ki * integral(e)

    Control law (VELOCITY source):
        u = Kp * e - Kd * (x - x_prev) / dt + Ki * integral(e)

    where e = target - present and dt is the measured wall time between
    calls, not the nominal period. The first call after ``reset`` has no
    history and uses a zero derivative term. The output is clamped to
    [min_current, max_current] and then truncated toward zero.

    Attributes:
        kp: Proportional gain.
        kd: Derivative gain.
        ki: Integral gain (0 disables integration).
        max_current: Upper output bound.
        min_current: Lower output bound (``-max_current`` when symmetric).
        derivative_source: Input of the derivative term.
        integral_limit: Anti-windup clamp on the integral state.
    """

    def __init__(
        self,
        kp: float = 1.0,
        kd: float = 0.1,
        ki: float = 0.0,
        max_current: int = 20,
        min_current: Optional[int] = None,
        derivative_source: DerivativeSource = DerivativeSource.ERROR,
        integral_limit: float = 1000.0,
    ):
        """Initialize the controller.

        Args:
            kp: Proportional gain (current units per count).
            kd: Derivative gain (current units per count/s).
            ki: Integral gain (current units per count·s). Default: 0.0
            max_current: Upper clamp, must be non-negative.
            min_current: Lower clamp. None means symmetric (-max_current).
                Use 0 for a unidirectional profile.
            derivative_source: ERROR or VELOCITY (see class docstring).
            integral_limit: Anti-windup clamp on the accumulated integral.

        Raises:
            ValueError: If the bounds are inconsistent.
        """
        if max_current < 0:
            raise ValueError(f"max_current must be non-negative, got {max_current}")
        if min_current is None:
            min_current = -max_current
        if min_current > max_current:
            raise ValueError(f"min_current ({min_current}) exceeds max_current ({max_current})")

        self.kp = kp
        self.kd = kd
        self.ki = ki
        self.max_current = max_current
        self.min_current = min_current
        self.derivative_source = DerivativeSource(derivative_source)
        self.integral_limit = integral_limit

        # History for the derivative term
        self.prev_error: Optional[float] = None
        self.prev_position: Optional[float] = None
        self.prev_time: Optional[float] = None

        # Integral state (accumulated error)
        self.integral: float = 0.0

        # Last computed terms, for diagnostics
        self._last: Dict[str, float] = {}

    def clamp(self, output: float) -> int:
        """Clamp a raw output to the current bounds and truncate to int.

        NaN maps to 0; infinities map to the respective bound.
        """
        if math.isnan(output):
            output = 0.0
        output = max(float(self.min_current), min(float(self.max_current), output))
        return int(output)

    def compute(self, target: float, present: float, now: float) -> int:
        """Compute the goal current for one tick.

        Args:
            target: Reference position (counts).
            present: Measured position (counts).
            now: Monotonic timestamp of the measurement (seconds).

        Returns:
            Goal current in native integer units, within [min_current, max_current].
        """
        error = float(target) - float(present)

        dt = None if self.prev_time is None else now - self.prev_time
        derivative = 0.0
        if dt is not None and dt > 0:
            if self.derivative_source is DerivativeSource.ERROR:
                derivative = (error - self.prev_error) / dt
            else:
                derivative = -(float(present) - self.prev_position) / dt

        # Accumulate integral of error with anti-windup
        if self.ki and dt is not None and dt > 0:
            self.integral += error * dt
            self.integral = max(-self.integral_limit, min(self.integral_limit, self.integral))

        output = self.kp * error + self.kd * derivative + self.ki * self.integral
        command = self.clamp(output)

        self.prev_error = error
        self.prev_position = float(present)
        self.prev_time = now

        self._last = {
            "target": float(target),
            "present": float(present),
            "error": error,
            "derivative": derivative,
            "integral": self.integral,
            "output": output,
            "command": float(command),
        }
        return command

    def reset(self) -> None:
        """Clear history and integral state.

        Call this at the start of each run, before the first tick.
        """
        self.prev_error = None
        self.prev_position = None
        self.prev_time = None
        self.integral = 0.0
        self._last = {}

    def get_diagnostics(self) -> Dict[str, float]:
        """Terms of the last ``compute`` call (empty before the first call)."""
        return dict(self._last)
