"""Control table layout and device status flags for XM430-series actuators.

Each control table entry is a semantic key mapped to a register offset, a
byte width and a signedness. The width and signedness are fixed per address
and the register client refuses transactions that disagree with them.
"""

from enum import Enum, IntEnum, IntFlag
from typing import List


class ControlTableAddress(Enum):
    """Control table registers used by the current-control run.

    Each member's value is ``(offset, width, signed)``.
    """

    OPERATING_MODE = (11, 1, False)
    CURRENT_LIMIT = (38, 2, False)
    TORQUE_LIMIT = (40, 2, False)
    TORQUE_ENABLE = (64, 1, False)
    GOAL_CURRENT = (102, 2, True)
    PRESENT_CURRENT = (126, 2, True)
    PRESENT_POSITION = (132, 4, True)

    def __init__(self, offset: int, width: int, signed: bool) -> None:
        self.offset = offset
        self.width = width
        self.signed = signed

    @property
    def min_value(self) -> int:
        """Smallest value the register can hold."""
        return -(1 << (8 * self.width - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        """Largest value the register can hold."""
        bits = 8 * self.width
        return (1 << (bits - 1)) - 1 if self.signed else (1 << bits) - 1

    def to_raw(self, value: int) -> int:
        """Convert a register value to the unsigned word sent on the bus.

        Raises:
            ValueError: If value does not fit the register.
        """
        if not self.min_value <= value <= self.max_value:
            raise ValueError(
                f"{self.name} holds [{self.min_value}, {self.max_value}], got {value}"
            )
        return int(value) & ((1 << (8 * self.width)) - 1)

    def from_raw(self, raw: int) -> int:
        """Convert an unsigned word read from the bus, honoring signedness."""
        bits = 8 * self.width
        raw = int(raw) & ((1 << bits) - 1)
        if self.signed and raw & (1 << (bits - 1)):
            raw -= 1 << bits
        return raw


class OperatingMode(IntEnum):
    """Values of the Operating Mode register."""

    CURRENT = 0
    VELOCITY = 1
    POSITION = 3
    EXTENDED_POSITION = 4
    CURRENT_BASED_POSITION = 5
    PWM = 16


TORQUE_DISABLE = 0
TORQUE_ENABLE = 1


class ProtocolError(IntFlag):
    """Device-reported fault bits of a status packet.

    Bits are independent and may be set together.
    """

    NONE = 0
    INPUT_VOLTAGE = 0x01
    ANGLE_LIMIT = 0x02
    OVERHEATING = 0x04
    RANGE = 0x08
    CHECKSUM = 0x10
    OVERLOAD = 0x20
    INSTRUCTION = 0x40
    HARDWARE_ALERT = 0x80


PROTOCOL_ERROR_DESCRIPTIONS = {
    ProtocolError.INPUT_VOLTAGE: "Input Voltage Error",
    ProtocolError.ANGLE_LIMIT: "Angle Limit Error",
    ProtocolError.OVERHEATING: "Overheating Error",
    ProtocolError.RANGE: "Range Error",
    ProtocolError.CHECKSUM: "Checksum Error",
    ProtocolError.OVERLOAD: "Overload Error",
    ProtocolError.INSTRUCTION: "Instruction Error",
    ProtocolError.HARDWARE_ALERT: "Hardware Alert",
}


def decode_protocol_error(error: int) -> List[ProtocolError]:
    """Split a status error byte into its individual fault bits.

    Args:
        error: Raw error byte (or ProtocolError) from a status packet.

    Returns:
        Every set fault bit, lowest first. Empty when no fault is set.
    """
    return [flag for flag in PROTOCOL_ERROR_DESCRIPTIONS if int(error) & flag]
