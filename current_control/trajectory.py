"""Reference trajectory for the point-to-point move.

The target moves linearly from the start position to the goal over a fixed
duration and holds the goal afterwards.
"""

from dataclasses import dataclass

import numpy as np


def target_position(start: float, goal: float, t: float, duration: float) -> float:
    """Compute the reference position at time t along a linear profile.

        target(t) = start + clamp(t / duration, 0, 1) * (goal - start)

    The result is additionally clamped to the segment between start and goal,
    so it never overshoots the goal in either direction of travel.

    Args:
        start: Start position (encoder counts).
        goal: Goal position (encoder counts).
        t: Time since the start of the move (seconds).
        duration: Move duration (seconds), must be positive.

    Returns:
        Reference position in encoder counts. Exactly ``goal`` for t >= duration.

    Raises:
        ValueError: If duration is not positive.

    Example:
        >>> target_position(0, 1024, 1.5, 3.0)
        512.0
    """
    if duration <= 0:
        raise ValueError(f"Trajectory duration must be positive, got {duration}")
    ratio = float(np.clip(t / duration, 0.0, 1.0))
    if ratio >= 1.0:
        return float(goal)
    target = start + ratio * (goal - start)
    return float(np.clip(target, min(start, goal), max(start, goal)))


@dataclass(frozen=True)
class LinearTrajectory:
    """Fixed-duration linear move from start_position to goal_position."""

    start_position: int
    goal_position: int
    duration: float

    def __post_init__(self) -> None:
        if self.duration <= 0:
            raise ValueError(f"Trajectory duration must be positive, got {self.duration}")

    @classmethod
    def from_displacement(cls, start: int, displacement: int, duration: float) -> "LinearTrajectory":
        return cls(start, start + displacement, duration)

    def target(self, t: float) -> float:
        """Reference position at time t (seconds since move start)."""
        return target_position(self.start_position, self.goal_position, t, self.duration)
