import asyncio
from typing import List

import pytest
import serial
from fake_bus import FakeActuator, open_bus

from current_control.config import RunConfig
from current_control.control_table import ControlTableAddress
from current_control.orchestrator import ControlLoop, ExitReason, LoopState
from current_control.register_client import ActuatorHandle, RegisterClient
from current_control.stop_signal import StopSignal
from current_control.telemetry_store import read_samples
from current_control.transport import CommResult

POSITION = ControlTableAddress.PRESENT_POSITION
CURRENT = ControlTableAddress.PRESENT_CURRENT
GOAL = ControlTableAddress.GOAL_CURRENT
TORQUE = ControlTableAddress.TORQUE_ENABLE


class FakeClock:
    """Simulated monotonic clock that only advances when the loop sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def read_counter(address, actuator_id=None):
    """Fault hook helper: count reads of ``address`` and call ``on_read(n)``."""
    calls = {"n": 0}

    def wrap(on_read):
        def fault(fault_id, operation, offset):
            if operation == "read" and offset == address.offset and (
                actuator_id is None or fault_id == actuator_id
            ):
                calls["n"] += 1
                return on_read(calls["n"])
            return None

        return fault

    return wrap


def make_loop(tmp_path, *actuators, stop_signal=None, **overrides):
    device, dxl_bus = open_bus(*actuators)
    settings = dict(
        actuator_ids=tuple(a.actuator_id for a in actuators),
        duration=1.0,
        period=0.125,
        output_dir=str(tmp_path),
        label="test",
        stop_input="none",
    )
    settings.update(overrides)
    config = RunConfig(**settings)
    clock = FakeClock()
    loop = ControlLoop(
        RegisterClient(dxl_bus),
        [ActuatorHandle(a.actuator_id) for a in actuators],
        config,
        stop_signal=stop_signal,
        clock=clock,
        sleep=clock.sleep,
    )
    return loop, device, clock


def test_full_run_single_actuator(tmp_path):
    loop, device, _ = make_loop(tmp_path, FakeActuator(1, position=2048))

    result = asyncio.run(loop.run())

    assert result.exit_reason is ExitReason.DURATION_ELAPSED
    assert result.ticks == 8
    assert result.samples_recorded == 8
    assert result.failed_ticks == 0
    assert loop.state is LoopState.STOPPED

    trajectory = loop.trajectories[0]
    assert (trajectory.start_position, trajectory.goal_position) == (2048, 3072)

    samples = read_samples(result.output_path)
    assert [s.elapsed_time for s in samples] == [i * 0.125 for i in range(8)]
    assert all(s.present_position == 2048 for s in samples)
    # On target at t=0, then saturated towards the goal
    assert samples[0].present_current == 0
    assert all(s.present_current == 20 for s in samples[1:])

    goals = device.written_values(1, GOAL)
    assert goals[0] == 0 and goals[-1] == 0
    assert device.written_values(1, TORQUE) == [0, 1, 0]


def test_transport_failure_mid_tick_skips_sample(tmp_path):
    loop, device, _ = make_loop(tmp_path, FakeActuator(1, position=0))
    device.fault = read_counter(CURRENT)(lambda n: CommResult.RX_TIMEOUT if n == 3 else None)

    result = asyncio.run(loop.run())

    assert result.exit_reason is ExitReason.DURATION_ELAPSED
    assert result.ticks == 8
    assert result.failed_ticks == 1
    assert result.samples_recorded == result.ticks - 1
    times = [s.elapsed_time for s in read_samples(result.output_path)]
    assert 0.25 not in times
    assert times[2] == 0.375


def test_stop_signal_ends_run_after_current_tick(tmp_path):
    stop = StopSignal()
    loop, device, _ = make_loop(tmp_path, FakeActuator(1), stop_signal=stop)

    def on_read(n):
        if n == 3:
            stop.set("operator input")
        return None

    device.fault = read_counter(CURRENT)(on_read)

    result = asyncio.run(loop.run())

    assert result.exit_reason is ExitReason.STOP_REQUESTED
    assert result.ticks == 3
    assert result.samples_recorded == 3
    assert loop.shutdown_count == 1
    # Exactly one torque disable after the setup enable
    assert device.written_values(1, TORQUE) == [0, 1, 0]
    assert device.written_values(1, GOAL)[-1] == 0


def test_stop_before_first_tick(tmp_path):
    stop = StopSignal()
    stop.set()
    loop, _, _ = make_loop(tmp_path, FakeActuator(1), stop_signal=stop)

    result = asyncio.run(loop.run())

    assert result.exit_reason is ExitReason.STOP_REQUESTED
    assert result.ticks == 0
    assert result.output_path.exists()


def test_setup_failure_is_reported_and_shuts_down(tmp_path):
    loop, device, _ = make_loop(tmp_path, FakeActuator(1))
    mode = ControlTableAddress.OPERATING_MODE
    device.fault = lambda actuator_id, operation, offset: (
        CommResult.RX_TIMEOUT if offset == mode.offset else None
    )

    result = asyncio.run(loop.run())

    assert result.exit_reason is ExitReason.SETUP_FAILURE
    assert result.ticks == 0
    assert device.written_values(1, TORQUE) == [0, 0]
    assert read_samples(result.output_path) == []


def test_start_position_read_failure_is_setup_failure(tmp_path, caplog):
    loop, device, _ = make_loop(tmp_path, FakeActuator(1))
    device.fault = read_counter(POSITION)(lambda n: CommResult.RX_CORRUPT)

    result = asyncio.run(loop.run())

    assert result.exit_reason is ExitReason.SETUP_FAILURE
    assert "reading PRESENT_POSITION failed (RX_CORRUPT" in caplog.text
    assert device.written_values(1, TORQUE) == [0, 1, 0]


def test_persistent_failure_stops_run(tmp_path):
    loop, device, _ = make_loop(tmp_path, FakeActuator(1), max_consecutive_failures=3)
    # The first read is the start position during setup
    device.fault = read_counter(POSITION)(lambda n: CommResult.RX_TIMEOUT if n > 1 else None)

    result = asyncio.run(loop.run())

    assert result.exit_reason is ExitReason.TRANSACTION_FAILURE
    assert result.ticks == 3
    assert result.samples_recorded == 0
    assert device.written_values(1, TORQUE) == [0, 1, 0]


def test_dual_actuators_move_in_opposite_directions(tmp_path):
    loop, device, _ = make_loop(
        tmp_path, FakeActuator(1, position=1000), FakeActuator(2, position=3000), torque_limit=500
    )

    result = asyncio.run(loop.run())

    assert result.samples_recorded == 8
    assert [(t.start_position, t.goal_position) for t in loop.trajectories] == [
        (1000, 2024),
        (3000, 1976),
    ]
    samples = read_samples(result.output_path)
    assert samples[1].positions == (1000, 3000)
    assert samples[1].currents == (20, -20)
    assert result.output_path.read_text().splitlines()[0] == (
        "Time(s),Position1,Current1,Position2,Current2"
    )
    for actuator_id in (1, 2):
        assert device.written_values(actuator_id, TORQUE) == [0, 1, 0]
        assert device.written_values(actuator_id, ControlTableAddress.TORQUE_LIMIT) == [500]


def test_failed_actuator_does_not_block_the_other(tmp_path):
    loop, device, _ = make_loop(tmp_path, FakeActuator(1), FakeActuator(2))
    # Read 1 is setup; read 3 is the second tick
    device.fault = read_counter(POSITION, actuator_id=1)(lambda n: CommResult.RX_TIMEOUT if n == 3 else None)

    result = asyncio.run(loop.run())

    assert result.failed_ticks == 1
    assert result.samples_recorded == 7
    # setup zero + one command per tick + shutdown zero
    assert len(device.written_values(2, GOAL)) == 1 + 8 + 1
    assert len(device.written_values(1, GOAL)) == 1 + 7 + 1


def test_overrun_starts_next_tick_immediately(tmp_path):
    loop, device, clock = make_loop(tmp_path, FakeActuator(1))

    def on_read(n):
        if n == 1:
            clock.now += 0.25
        return None

    device.fault = read_counter(CURRENT)(on_read)

    result = asyncio.run(loop.run())

    times = [s.elapsed_time for s in loop.recorder.samples]
    assert times == [0.0, 0.25, 0.375, 0.5, 0.625, 0.75, 0.875]
    assert result.ticks == 7
    assert clock.sleeps == [0.125] * 6


def test_shutdown_runs_once(tmp_path):
    loop, device, _ = make_loop(tmp_path, FakeActuator(1))
    asyncio.run(loop.run())
    loop.shutdown()
    assert loop.shutdown_count == 1
    assert device.written_values(1, TORQUE) == [0, 1, 0]


def test_disconnect_while_running_still_shuts_down(tmp_path):
    loop, device, _ = make_loop(
        tmp_path, FakeActuator(1), FakeActuator(2), max_consecutive_failures=3
    )
    unplugged = {"now": False}

    def unplug(n):
        if n == 2:
            unplugged["now"] = True
        return None

    count_current_reads = read_counter(CURRENT, actuator_id=1)(unplug)

    def fault(actuator_id, operation, offset):
        count_current_reads(actuator_id, operation, offset)
        if unplugged["now"]:
            return serial.SerialException("device disconnected")
        return None

    device.fault = fault

    result = asyncio.run(loop.run())

    assert result.exit_reason is ExitReason.TRANSACTION_FAILURE
    assert result.ticks == 4
    assert result.samples_recorded == 1
    assert loop.state is LoopState.STOPPED
    assert len(read_samples(result.output_path)) == 1
    for actuator_id in (1, 2):
        torque_writes = [
            request for request in device.requests
            if request[:3] == (actuator_id, "write", TORQUE.offset)
        ]
        # setup disable and enable, then the shutdown disable that failed
        assert len(torque_writes) == 3
        assert device.written_values(actuator_id, TORQUE) == [0, 1]


def test_shutdown_write_that_raises_does_not_skip_the_rest(tmp_path, caplog):
    loop, device, _ = make_loop(tmp_path, FakeActuator(1), FakeActuator(2))
    loop.handles[0].invalidate()

    loop.shutdown()

    assert loop.state is LoopState.STOPPED
    assert device.written_values(2, GOAL) == [0]
    assert device.written_values(2, TORQUE) == [0]
    assert "TORQUE_ENABLE write raised on shutdown" in caplog.text
    assert loop.store.output_path.exists()


def test_displacement_count_must_match_actuators(tmp_path):
    _, dxl_bus = open_bus(FakeActuator(1))
    config = RunConfig(actuator_ids=(1,), output_dir=str(tmp_path))
    with pytest.raises(ValueError):
        ControlLoop(RegisterClient(dxl_bus), [ActuatorHandle(1), ActuatorHandle(2)], config)
