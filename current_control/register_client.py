"""Typed register transactions against an actuator's control table.

The client turns semantic control table keys into sized read/write
transactions, decodes values with the register's signedness and reports
every device fault bit on its own log line. It never caches register
values: each call is a bus transaction.
"""

import logging
from dataclasses import dataclass
from typing import NamedTuple, Optional

from current_control.control_table import (
    ControlTableAddress,
    OperatingMode,
    ProtocolError,
    PROTOCOL_ERROR_DESCRIPTIONS,
    decode_protocol_error,
)
from current_control.transport import CommResult, DynamixelBus


@dataclass
class ActuatorHandle:
    """One addressable actuator and its last known device state.

    ``operating_mode`` and ``torque_enabled`` are None until a successful
    write establishes them.
    """

    actuator_id: int
    operating_mode: Optional[OperatingMode] = None
    torque_enabled: Optional[bool] = None
    goal_current: Optional[int] = None
    valid: bool = True

    def invalidate(self) -> None:
        """Mark the handle unusable (the port has been closed)."""
        self.valid = False


class ReadResult(NamedTuple):
    value: Optional[int]
    comm_result: CommResult
    error: ProtocolError

    @property
    def ok(self) -> bool:
        return self.comm_result.ok and not self.error


class WriteResult(NamedTuple):
    comm_result: CommResult
    error: ProtocolError

    @property
    def ok(self) -> bool:
        return self.comm_result.ok and not self.error


def log_protocol_error(actuator_id: int, address: ControlTableAddress, error: int) -> None:
    """Log every set fault bit of a status error byte separately."""
    for flag in decode_protocol_error(error):
        logging.error(
            f"[ID:{actuator_id:03d}] {address.name}: {PROTOCOL_ERROR_DESCRIPTIONS[flag]}"
        )


class RegisterClient:
    """Sized read/write access to control table registers.

    Attributes:
        bus: Open bus the transactions run on.
    """

    def __init__(self, bus: DynamixelBus) -> None:
        self.bus = bus

    @staticmethod
    def _check(handle: ActuatorHandle, address: ControlTableAddress, width: int) -> None:
        if not handle.valid:
            raise RuntimeError(f"Actuator handle {handle.actuator_id} is no longer valid")
        if address.width != width:
            raise ValueError(
                f"{address.name} is a {address.width}-byte register, "
                f"not accessible with a {width}-byte transaction"
            )

    def _report(
        self,
        handle: ActuatorHandle,
        address: ControlTableAddress,
        comm_result: CommResult,
        error: ProtocolError,
        action: str,
    ) -> None:
        if not comm_result.ok:
            logging.warning(
                f"[ID:{handle.actuator_id:03d}] {action} {address.name} failed: "
                f"{self.bus.describe(comm_result)}"
            )
        if error:
            log_protocol_error(handle.actuator_id, address, error)

    def _read(self, handle: ActuatorHandle, address: ControlTableAddress, width: int) -> ReadResult:
        self._check(handle, address, width)
        raw, comm_result, raw_error = self.bus.read(
            handle.actuator_id, address.offset, address.width
        )
        error = ProtocolError(raw_error)
        self._report(handle, address, comm_result, error, "Read")
        value = address.from_raw(raw) if comm_result.ok else None
        return ReadResult(value, comm_result, error)

    def _write(
        self, handle: ActuatorHandle, address: ControlTableAddress, value: int, width: int
    ) -> WriteResult:
        self._check(handle, address, width)
        raw = address.to_raw(value)
        comm_result, raw_error = self.bus.write(
            handle.actuator_id, address.offset, address.width, raw
        )
        error = ProtocolError(raw_error)
        self._report(handle, address, comm_result, error, "Write")
        if comm_result.ok and not error:
            self._apply_side_effect(handle, address, value)
        return WriteResult(comm_result, error)

    @staticmethod
    def _apply_side_effect(handle: ActuatorHandle, address: ControlTableAddress, value: int) -> None:
        if address is ControlTableAddress.TORQUE_ENABLE:
            handle.torque_enabled = bool(value)
        elif address is ControlTableAddress.OPERATING_MODE:
            try:
                handle.operating_mode = OperatingMode(value)
            except ValueError:
                handle.operating_mode = None
        elif address is ControlTableAddress.GOAL_CURRENT:
            handle.goal_current = value

    def read1(self, handle: ActuatorHandle, address: ControlTableAddress) -> ReadResult:
        return self._read(handle, address, 1)

    def read2(self, handle: ActuatorHandle, address: ControlTableAddress) -> ReadResult:
        return self._read(handle, address, 2)

    def read4(self, handle: ActuatorHandle, address: ControlTableAddress) -> ReadResult:
        return self._read(handle, address, 4)

    def write1(self, handle: ActuatorHandle, address: ControlTableAddress, value: int) -> WriteResult:
        return self._write(handle, address, value, 1)

    def write2(self, handle: ActuatorHandle, address: ControlTableAddress, value: int) -> WriteResult:
        return self._write(handle, address, value, 2)

    def write4(self, handle: ActuatorHandle, address: ControlTableAddress, value: int) -> WriteResult:
        return self._write(handle, address, value, 4)

    def read(self, handle: ActuatorHandle, address: ControlTableAddress) -> ReadResult:
        """Read a register using the transaction size it declares."""
        return self._read(handle, address, address.width)

    def write(self, handle: ActuatorHandle, address: ControlTableAddress, value: int) -> WriteResult:
        """Write a register using the transaction size it declares."""
        return self._write(handle, address, value, address.width)
