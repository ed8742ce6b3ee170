"""Forward-only setup state machine that puts an actuator in current control.

Order: disable torque, select current-control mode, zero the goal current
and apply the current (and optional torque) limit, enable torque. A failed
transaction stops the sequence and raises ``SetupError`` naming the last
state that was reached. Disabling torque is allowed from any state and is
also the shutdown path.
"""

import logging
from enum import IntEnum
from typing import Optional

from current_control.config import TERM_BLUE, TERM_RESET
from current_control.control_table import (
    TORQUE_DISABLE,
    TORQUE_ENABLE,
    ControlTableAddress,
    OperatingMode,
    ProtocolError,
)
from current_control.register_client import ActuatorHandle, RegisterClient
from current_control.transport import CommResult


class SetupState(IntEnum):
    DISABLED = 0
    MODE_CONFIGURED = 1
    CURRENT_LIMITED = 2
    TORQUE_ENABLED = 3


class SetupError(Exception):
    """A control table transaction failed while configuring an actuator.

    Attributes:
        actuator_id: Actuator that failed.
        last_state: Last state successfully reached, or None if none was.
        address: Register whose transaction failed.
        operation: "read" or "write".
        comm_result: Transport outcome of the failed transaction.
        error: Device fault bits of the failed transaction.
    """

    def __init__(
        self,
        actuator_id: int,
        last_state: Optional[SetupState],
        address: ControlTableAddress,
        comm_result: CommResult,
        error: ProtocolError,
        operation: str = "write",
    ) -> None:
        self.actuator_id = actuator_id
        self.last_state = last_state
        self.address = address
        self.comm_result = comm_result
        self.error = error
        self.operation = operation
        verb = "reading" if operation == "read" else "writing"
        reached = last_state.name if last_state is not None else "none"
        super().__init__(
            f"Actuator {actuator_id}: {verb} {address.name} failed "
            f"({comm_result.name}, error=0x{int(error):02X}); last state reached: {reached}"
        )


class SetupSequence:
    """Drives one actuator through the setup states.

    Attributes:
        state: Current state, None before the first successful step.
    """

    def __init__(
        self,
        client: RegisterClient,
        handle: ActuatorHandle,
        current_limit: int,
        torque_limit: Optional[int] = None,
    ) -> None:
        self.client = client
        self.handle = handle
        self.current_limit = current_limit
        self.torque_limit = torque_limit
        self.state: Optional[SetupState] = None

    def _require(self, target: SetupState) -> None:
        if target is not SetupState.DISABLED and (self.state is None or target != self.state + 1):
            current = self.state.name if self.state is not None else "None"
            raise RuntimeError(f"Illegal setup transition {current} -> {target.name}")

    def _write(self, address: ControlTableAddress, value: int) -> None:
        result = self.client.write(self.handle, address, value)
        if not result.ok:
            raise SetupError(
                self.handle.actuator_id, self.state, address, result.comm_result, result.error
            )

    def disable(self) -> None:
        """Disable torque and return to DISABLED.

        Raises:
            SetupError: If the torque-disable write fails.
        """
        self._write(ControlTableAddress.TORQUE_ENABLE, TORQUE_DISABLE)
        self.state = SetupState.DISABLED

    def configure_mode(self) -> None:
        self._require(SetupState.MODE_CONFIGURED)
        self._write(ControlTableAddress.OPERATING_MODE, OperatingMode.CURRENT)
        self.state = SetupState.MODE_CONFIGURED

    def apply_limits(self) -> None:
        self._require(SetupState.CURRENT_LIMITED)
        self._write(ControlTableAddress.GOAL_CURRENT, 0)
        self._write(ControlTableAddress.CURRENT_LIMIT, self.current_limit)
        if self.torque_limit is not None:
            self._write(ControlTableAddress.TORQUE_LIMIT, self.torque_limit)
        self.state = SetupState.CURRENT_LIMITED

    def enable_torque(self) -> None:
        self._require(SetupState.TORQUE_ENABLED)
        self._write(ControlTableAddress.TORQUE_ENABLE, TORQUE_ENABLE)
        self.state = SetupState.TORQUE_ENABLED

    def run(self) -> SetupState:
        """Run every step in order.

        Returns:
            SetupState.TORQUE_ENABLED on success.

        Raises:
            SetupError: On the first failed write.
        """
        logging.debug(f"[ID:{self.handle.actuator_id:03d}] Configuring current control")
        self.disable()
        self.configure_mode()
        self.apply_limits()
        self.enable_torque()
        logging.info(
            f"{TERM_BLUE}✓ Actuator {self.handle.actuator_id} in current control "
            f"(limit {self.current_limit}){TERM_RESET}"
        )
        return self.state
