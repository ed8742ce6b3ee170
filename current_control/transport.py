"""Bus access through the ROBOTIS Dynamixel SDK.

The SDK's ``PortHandler`` owns the serial device and its ``PacketHandler``
owns Protocol 2.0 framing, checksums and per-packet timeouts. ``DynamixelBus``
narrows them to what a run needs: open, set the baud rate, close, and sized
register reads and writes that always come back with a ``CommResult``.
"""

import logging
from enum import Enum
from typing import Optional, Tuple

import serial
from dynamixel_sdk import PacketHandler, PortHandler
from dynamixel_sdk.robotis_def import (
    COMM_NOT_AVAILABLE,
    COMM_PORT_BUSY,
    COMM_RX_CORRUPT,
    COMM_RX_FAIL,
    COMM_RX_TIMEOUT,
    COMM_RX_WAITING,
    COMM_SUCCESS,
    COMM_TX_ERROR,
    COMM_TX_FAIL,
)

PROTOCOL_VERSION = 2.0


class CommResult(Enum):
    """Transport-level outcome of one transaction, keyed by the SDK's COMM_* code."""

    SUCCESS = COMM_SUCCESS
    PORT_BUSY = COMM_PORT_BUSY
    TX_FAIL = COMM_TX_FAIL
    RX_FAIL = COMM_RX_FAIL
    TX_ERROR = COMM_TX_ERROR
    RX_WAITING = COMM_RX_WAITING
    RX_TIMEOUT = COMM_RX_TIMEOUT
    RX_CORRUPT = COMM_RX_CORRUPT
    NOT_AVAILABLE = COMM_NOT_AVAILABLE

    @property
    def ok(self) -> bool:
        return self is CommResult.SUCCESS


READ_METHODS = {1: "read1ByteTxRx", 2: "read2ByteTxRx", 4: "read4ByteTxRx"}
WRITE_METHODS = {1: "write1ByteTxRx", 2: "write2ByteTxRx", 4: "write4ByteTxRx"}


class DynamixelBus:
    """One serial bus and the Protocol 2.0 packet handler used on it.

    Serial exceptions raised mid-transaction (an unplugged adapter, say) are
    reported as ``CommResult.TX_FAIL``; nothing above this class sees them.

    Attributes:
        device_name: Serial device path, e.g. ``/dev/ttyUSB0``.
        baud_rate: Configured baud rate, or None before ``set_baud_rate``.
        port_handler: SDK port handler bound to ``device_name``.
        packet_handler: SDK packet handler for protocol 2.0.
    """

    def __init__(self, device_name: str, port_handler=None, packet_handler=None) -> None:
        self.device_name = device_name
        self.baud_rate: Optional[int] = None
        self.port_handler = port_handler if port_handler is not None else PortHandler(device_name)
        self.packet_handler = (
            packet_handler if packet_handler is not None else PacketHandler(PROTOCOL_VERSION)
        )

    @property
    def is_open(self) -> bool:
        return bool(self.port_handler.is_open)

    def open(self) -> bool:
        """Open the device. Returns False (and logs) on failure."""
        try:
            opened = self.port_handler.openPort()
        except (serial.SerialException, OSError) as e:
            logging.error(f"Failed to open port {self.device_name}: {e}")
            return False
        if not opened:
            logging.error(f"Failed to open port {self.device_name}")
        return bool(opened)

    def set_baud_rate(self, baud_rate: int) -> bool:
        """Reconfigure the open port. Returns False (and logs) on failure."""
        if not self.is_open:
            logging.error("Cannot set baud rate: port is not open")
            return False
        try:
            changed = self.port_handler.setBaudRate(baud_rate)
        except (serial.SerialException, OSError) as e:
            logging.error(f"Failed to set baud rate {baud_rate}: {e}")
            return False
        if not changed:
            logging.error(f"Failed to set baud rate {baud_rate}")
            return False
        self.baud_rate = baud_rate
        return True

    def close(self) -> None:
        if self.is_open:
            self.port_handler.closePort()

    def describe(self, comm_result: CommResult) -> str:
        """SDK text for a transaction outcome."""
        return self.packet_handler.getTxRxResult(comm_result.value)

    def _serial_failure(self, actuator_id: int, error: Exception) -> CommResult:
        logging.debug(f"[ID:{actuator_id:03d}] Serial error: {error}")
        # The SDK leaves the port claimed when a transaction raises
        self.port_handler.is_using = False
        return CommResult.TX_FAIL

    def read(self, actuator_id: int, offset: int, width: int) -> Tuple[int, CommResult, int]:
        """Read ``width`` bytes at ``offset``.

        Returns:
            (unsigned value, comm result, device error byte). The value is
            meaningless unless the comm result is SUCCESS.
        """
        read_tx_rx = getattr(self.packet_handler, READ_METHODS[width])
        try:
            value, code, error = read_tx_rx(self.port_handler, actuator_id, offset)
        except (serial.SerialException, OSError) as e:
            return 0, self._serial_failure(actuator_id, e), 0
        return value, CommResult(code), error

    def write(self, actuator_id: int, offset: int, width: int, value: int) -> Tuple[CommResult, int]:
        """Write an unsigned ``width``-byte value at ``offset``."""
        write_tx_rx = getattr(self.packet_handler, WRITE_METHODS[width])
        try:
            code, error = write_tx_rx(self.port_handler, actuator_id, offset, value)
        except (serial.SerialException, OSError) as e:
            return self._serial_failure(actuator_id, e), 0
        return CommResult(code), error
