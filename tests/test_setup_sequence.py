import pytest

from current_control.control_table import ControlTableAddress, ProtocolError
from current_control.setup_sequence import SetupError, SetupSequence, SetupState
from current_control.transport import CommResult


def write_order(device):
    return [(offset, value) for _, offset, value in device.writes]


def test_setup_order(client, handle, device):
    state = SetupSequence(client, handle, current_limit=20).run()

    assert state is SetupState.TORQUE_ENABLED
    assert write_order(device) == [
        (ControlTableAddress.TORQUE_ENABLE.offset, 0),
        (ControlTableAddress.OPERATING_MODE.offset, 0),
        (ControlTableAddress.GOAL_CURRENT.offset, 0),
        (ControlTableAddress.CURRENT_LIMIT.offset, 20),
        (ControlTableAddress.TORQUE_ENABLE.offset, 1),
    ]
    assert handle.torque_enabled is True
    assert handle.goal_current == 0


def test_setup_writes_optional_torque_limit(client, handle, device):
    SetupSequence(client, handle, current_limit=20, torque_limit=500).run()
    assert device.written_values(1, ControlTableAddress.TORQUE_LIMIT) == [500]


def test_failure_reports_last_state(client, handle, device):
    device.fault = (
        lambda actuator_id, operation, offset: CommResult.RX_TIMEOUT
        if offset == ControlTableAddress.CURRENT_LIMIT.offset
        else None
    )
    sequence = SetupSequence(client, handle, current_limit=20)

    with pytest.raises(SetupError) as excinfo:
        sequence.run()

    assert excinfo.value.last_state is SetupState.MODE_CONFIGURED
    assert excinfo.value.address is ControlTableAddress.CURRENT_LIMIT
    assert excinfo.value.comm_result is CommResult.RX_TIMEOUT
    assert "writing CURRENT_LIMIT failed (RX_TIMEOUT" in str(excinfo.value)
    assert sequence.state is SetupState.MODE_CONFIGURED
    # Torque was never enabled
    assert device.written_values(1, ControlTableAddress.TORQUE_ENABLE) == [0]


def test_failure_on_first_write(client, handle, actuator):
    actuator.error = int(ProtocolError.INPUT_VOLTAGE)
    with pytest.raises(SetupError) as excinfo:
        SetupSequence(client, handle, current_limit=20).run()
    assert excinfo.value.last_state is None
    assert excinfo.value.error == ProtocolError.INPUT_VOLTAGE
    assert "none" in str(excinfo.value)


def test_steps_only_move_forward(client, handle, device):
    sequence = SetupSequence(client, handle, current_limit=20)
    with pytest.raises(RuntimeError):
        sequence.enable_torque()
    with pytest.raises(RuntimeError):
        sequence.configure_mode()
    assert device.writes == []

    sequence.disable()
    sequence.configure_mode()
    with pytest.raises(RuntimeError):
        sequence.enable_torque()
    with pytest.raises(RuntimeError):
        sequence.configure_mode()


def test_disable_from_any_state(client, handle):
    sequence = SetupSequence(client, handle, current_limit=20)
    sequence.run()
    sequence.disable()
    assert sequence.state is SetupState.DISABLED
    assert handle.torque_enabled is False


def test_error_message_names_the_operation():
    written = SetupError(
        1, SetupState.MODE_CONFIGURED, ControlTableAddress.CURRENT_LIMIT,
        CommResult.TX_FAIL, ProtocolError.NONE,
    )
    read = SetupError(
        1, SetupState.TORQUE_ENABLED, ControlTableAddress.PRESENT_POSITION,
        CommResult.RX_TIMEOUT, ProtocolError.NONE, operation="read",
    )
    assert written.operation == "write"
    assert str(written).startswith("Actuator 1: writing CURRENT_LIMIT failed")
    assert read.operation == "read"
    assert str(read).startswith("Actuator 1: reading PRESENT_POSITION failed")
