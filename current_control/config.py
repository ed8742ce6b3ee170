"""Configuration parameters for the actuator current-control system.

This module centralizes all configuration parameters including:
- Serial bus settings
- Actuator identities and limits
- Control loop timing
- Controller gains
- Move profile (displacement and duration)
- Telemetry output settings

The constants are the defaults of a run. ``RunConfig`` bundles them into a
single structure that the command-line interface can override field by field.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

# ============================================================================
# Serial Bus Parameters
# ============================================================================

DEVICE_NAME = "/dev/ttyUSB0"
"""Serial device of the USB-to-RS485/TTL adapter (U2D2 or similar)."""

BAUD_RATE = 57600
"""Bus baud rate (bps). Factory default of the XM430 series."""


# ============================================================================
# Actuator Parameters
# ============================================================================

ACTUATOR_IDS = (1,)
"""Bus IDs of the actuators driven in one run, in handle order."""

CURRENT_LIMIT = 20
"""Value written to the Current Limit register during setup (native units)."""

TORQUE_LIMIT: Optional[int] = None
"""Optional value for the Torque Limit register. None skips the write.

The dual-actuator profile used 500 here.
"""

ENCODER_COUNTS_PER_REV = 4096
"""Present Position counts per output revolution."""


# ============================================================================
# Move Profile
# ============================================================================

DISPLACEMENT = 1024
"""Target displacement of the first actuator (encoder counts).

1024 counts = 90° on a 4096 count/rev encoder. Additional actuators
alternate sign so a pair moves in opposite directions.
"""

MOVE_DURATION = 3.0
"""Duration of the linear move and of the whole run (seconds)."""

CONTROL_PERIOD = 0.01
"""Nominal control loop period (seconds). 10 ms = 100 Hz."""


# ============================================================================
# Controller Gains
# ============================================================================

KP = 1.0
"""Proportional gain (current units per encoder count)."""

KD = 0.1
"""Derivative gain (current units per encoder count per second)."""

KI = 0.0
"""Integral gain. Unused by the observed profiles, kept for tuning."""

MAX_CURRENT = 20
"""Upper clamp of the commanded goal current (native units)."""

MIN_CURRENT: Optional[int] = None
"""Lower clamp of the commanded goal current.

None means symmetric clamping to ``-MAX_CURRENT``. Set to 0 for a
unidirectional profile that only ever pushes one way.
"""

INTEGRAL_LIMIT = 1000.0
"""Anti-windup clamp on the accumulated error integral (count·s)."""

DERIVATIVE_SOURCE = "error"
"""Derivative term input: "error" (d(error)/dt) or "velocity" (-dx/dt)."""


# ============================================================================
# Failure Policy
# ============================================================================

MAX_CONSECUTIVE_FAILURES = 10
"""Consecutive aborted ticks tolerated before the run is stopped.

A single lost status packet only costs one tick. A disconnected cable
aborts every tick and ends the run after ~100 ms at the default period.
"""


# ============================================================================
# Telemetry Output
# ============================================================================

OUTPUT_DIR = "."
"""Base directory. Telemetry files land in ``<OUTPUT_DIR>/results/``."""

TIME_DECIMALS = 6
"""Decimal places of the elapsed time column in telemetry CSV files."""

STOP_INPUT = "line"
"""Operator stop input: "line" (Enter), "key" (any key), or "none"."""


# ============================================================================
# Visualization Colors
# ============================================================================

PLOT_ORANGE = "#f74823"
"""Primary color - measured position."""

PLOT_BLUE = "#2374f7"
"""Secondary color - measured current."""

PLOT_TAUPE = "#686a5f"
"""Neutral color for guides and grids."""

# Terminal color codes (ANSI escape sequences)
TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for orange (RGB: 247, 72, 35)."""

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for blue (RGB: 35, 116, 247)."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""


def default_displacements(count: int, displacement: int = DISPLACEMENT) -> Tuple[int, ...]:
    """Return per-actuator displacements with alternating sign.

    Args:
        count: Number of actuators.
        displacement: Displacement of the first actuator (counts).

    Returns:
        Tuple of displacements, e.g. ``(1024, -1024)`` for a pair.
    """
    return tuple(displacement if i % 2 == 0 else -displacement for i in range(count))


@dataclass
class RunConfig:
    """Complete parameter set for one run.

    Defaults come from the module constants. ``displacements`` may be left
    empty, in which case ``default_displacements`` fills it in.
    """

    device_name: str = DEVICE_NAME
    baud_rate: int = BAUD_RATE
    actuator_ids: Tuple[int, ...] = ACTUATOR_IDS
    displacements: Tuple[int, ...] = ()
    duration: float = MOVE_DURATION
    period: float = CONTROL_PERIOD
    kp: float = KP
    kd: float = KD
    ki: float = KI
    max_current: int = MAX_CURRENT
    min_current: Optional[int] = MIN_CURRENT
    current_limit: int = CURRENT_LIMIT
    torque_limit: Optional[int] = TORQUE_LIMIT
    integral_limit: float = INTEGRAL_LIMIT
    derivative_source: str = DERIVATIVE_SOURCE
    max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES
    output_dir: str = OUTPUT_DIR
    label: Optional[str] = None
    stop_input: str = STOP_INPUT

    def __post_init__(self) -> None:
        self.actuator_ids = tuple(self.actuator_ids)
        if not self.displacements:
            self.displacements = default_displacements(len(self.actuator_ids))
        self.displacements = tuple(self.displacements)
        self.validate()

    def validate(self) -> None:
        """Check parameter consistency.

        Raises:
            ValueError: If any parameter is out of range or inconsistent.
        """
        if not self.actuator_ids:
            raise ValueError("At least one actuator ID is required")
        if len(set(self.actuator_ids)) != len(self.actuator_ids):
            raise ValueError(f"Duplicate actuator IDs: {self.actuator_ids}")
        for actuator_id in self.actuator_ids:
            if not 0 <= actuator_id <= 252:
                raise ValueError(f"Actuator ID out of range [0, 252]: {actuator_id}")
        if len(self.displacements) != len(self.actuator_ids):
            raise ValueError(
                f"Got {len(self.displacements)} displacements for "
                f"{len(self.actuator_ids)} actuators"
            )
        if self.duration <= 0:
            raise ValueError(f"Duration must be positive, got {self.duration}")
        if self.period <= 0:
            raise ValueError(f"Period must be positive, got {self.period}")
        if self.max_current < 0:
            raise ValueError(f"max_current must be non-negative, got {self.max_current}")
        if self.min_current is not None and self.min_current > self.max_current:
            raise ValueError(
                f"min_current ({self.min_current}) exceeds max_current ({self.max_current})"
            )
        if self.derivative_source not in ("error", "velocity"):
            raise ValueError(f"Unknown derivative source: {self.derivative_source}")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")
        if self.stop_input not in ("line", "key", "none"):
            raise ValueError(f"Unknown stop input: {self.stop_input}")
