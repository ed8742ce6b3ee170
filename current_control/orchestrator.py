"""Fixed-period control loop driving one or more actuators through a move.

Each tick runs the same pipeline for every actuator, in handle order:

    read present position -> compute target -> compute command
    -> write goal current -> read present current

and records one sample when every transaction of the tick succeeded. The
loop then sleeps until the next tick boundary. It leaves RUNNING when the
move duration has elapsed, when the stop signal is set, or when too many
consecutive ticks have failed. The shutdown writes and the telemetry flush
always run, whatever ended the run.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from current_control.config import TERM_BLUE, TERM_RESET, RunConfig
from current_control.control_table import TORQUE_DISABLE, ControlTableAddress
from current_control.controller import CurrentController, DerivativeSource
from current_control.register_client import ActuatorHandle, RegisterClient
from current_control.setup_sequence import SetupError, SetupSequence, SetupState
from current_control.stop_signal import StopSignal
from current_control.telemetry import Sample, TelemetryRecorder
from current_control.telemetry_store import TelemetryStore
from current_control.trajectory import LinearTrajectory


class LoopState(Enum):
    SETUP = "setup"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ExitReason(Enum):
    DURATION_ELAPSED = "duration elapsed"
    STOP_REQUESTED = "stop requested"
    TRANSACTION_FAILURE = "persistent transaction failure"
    SETUP_FAILURE = "setup failure"


@dataclass
class RunResult:
    """Summary of a finished run."""

    exit_reason: Optional[ExitReason]
    ticks: int
    samples_recorded: int
    failed_ticks: int
    output_path: Optional[Path]


class ControlLoop:
    """Owns the actuators, controllers and telemetry buffer for one run.

    Attributes:
        client: Register client bound to an open bus.
        handles: Actuators in handle order (size >= 1).
        config: Run parameters.
        recorder: Telemetry buffer.
        stop_signal: Shared cooperative stop flag.
        state: Current LoopState.
        ticks: Ticks attempted in RUNNING.
        failed_ticks: Ticks aborted by a failed transaction.
    """

    def __init__(
        self,
        client: RegisterClient,
        handles: Sequence[ActuatorHandle],
        config: RunConfig,
        stop_signal: Optional[StopSignal] = None,
        store: Optional[TelemetryStore] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not handles:
            raise ValueError("ControlLoop needs at least one actuator")
        if len(handles) != len(config.displacements):
            raise ValueError(
                f"Got {len(handles)} actuators but {len(config.displacements)} displacements"
            )

        self.client = client
        self.handles: List[ActuatorHandle] = list(handles)
        self.config = config
        self.stop_signal = stop_signal if stop_signal is not None else StopSignal()
        self.store = store if store is not None else TelemetryStore(config.output_dir, config.label)
        self.recorder = TelemetryRecorder(len(self.handles))
        self.clock = clock
        self.sleep = sleep

        self.controllers = [
            CurrentController(
                kp=config.kp,
                kd=config.kd,
                ki=config.ki,
                max_current=config.max_current,
                min_current=config.min_current,
                derivative_source=DerivativeSource(config.derivative_source),
                integral_limit=config.integral_limit,
            )
            for _ in self.handles
        ]
        self.trajectories: List[LinearTrajectory] = []

        self.state = LoopState.SETUP
        self.exit_reason: Optional[ExitReason] = None
        self.ticks = 0
        self.failed_ticks = 0
        self.consecutive_failures = 0
        self.shutdown_count = 0

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def setup(self) -> None:
        """Configure every actuator and plan its move from the present position.

        Raises:
            SetupError: If any setup write or start-position read fails.
        """
        for handle in self.handles:
            SetupSequence(
                self.client, handle, self.config.current_limit, self.config.torque_limit
            ).run()

        self.trajectories = []
        for handle, displacement in zip(self.handles, self.config.displacements):
            result = self.client.read(handle, ControlTableAddress.PRESENT_POSITION)
            if not result.ok:
                raise SetupError(
                    handle.actuator_id,
                    SetupState.TORQUE_ENABLED,
                    ControlTableAddress.PRESENT_POSITION,
                    result.comm_result,
                    result.error,
                    operation="read",
                )
            trajectory = LinearTrajectory.from_displacement(
                result.value, displacement, self.config.duration
            )
            self.trajectories.append(trajectory)
            logging.info(
                f"Actuator {handle.actuator_id}: {trajectory.start_position} -> "
                f"{trajectory.goal_position} in {trajectory.duration:.2f}s"
            )

        for controller in self.controllers:
            controller.reset()

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def check_exit(self, elapsed: float) -> Optional[ExitReason]:
        """Evaluate the exit predicates in order: duration, then stop signal."""
        if elapsed >= self.config.duration:
            return ExitReason.DURATION_ELAPSED
        if self.stop_signal.is_set():
            return ExitReason.STOP_REQUESTED
        return None

    def _service(self, index: int, elapsed: float, now: float) -> Optional[Tuple[int, int]]:
        """Run one actuator's share of a tick.

        Returns:
            (present_current, present_position), or None if a transaction
            failed. The remaining transactions for this actuator are skipped.
        """
        handle = self.handles[index]
        position = self.client.read(handle, ControlTableAddress.PRESENT_POSITION)
        if not position.ok:
            return None

        target = self.trajectories[index].target(elapsed)
        command = self.controllers[index].compute(target, position.value, now)

        written = self.client.write(handle, ControlTableAddress.GOAL_CURRENT, command)
        if not written.ok:
            return None

        current = self.client.read(handle, ControlTableAddress.PRESENT_CURRENT)
        if not current.ok:
            return None
        return current.value, position.value

    def tick(self, elapsed: float, now: float) -> bool:
        """Execute one tick for every actuator.

        Args:
            elapsed: Seconds since the loop started.
            now: Clock reading at the top of the tick.

        Returns:
            True if a sample was recorded, False if the tick was aborted.
        """
        self.ticks += 1
        readings = [self._service(i, elapsed, now) for i in range(len(self.handles))]

        if any(reading is None for reading in readings):
            self.failed_ticks += 1
            self.consecutive_failures += 1
            failed = [h.actuator_id for h, r in zip(self.handles, readings) if r is None]
            logging.warning(
                f"Tick {self.ticks} aborted at t={elapsed:.3f}s (actuators {failed}); no sample recorded"
            )
            return False

        self.consecutive_failures = 0
        self.recorder.record(
            Sample(
                elapsed_time=elapsed,
                currents=tuple(r[0] for r in readings),
                positions=tuple(r[1] for r in readings),
            )
        )
        return True

    async def run_loop(self) -> ExitReason:
        """Tick at the nominal period until an exit predicate fires."""
        self.state = LoopState.RUNNING
        period = self.config.period
        start = self.clock()
        deadline = start

        while True:
            now = self.clock()
            elapsed = now - start

            reason = self.check_exit(elapsed)
            if reason is not None:
                return reason

            self.tick(elapsed, now)
            if self.consecutive_failures >= self.config.max_consecutive_failures:
                logging.error(
                    f"{self.consecutive_failures} consecutive ticks failed; stopping the run"
                )
                return ExitReason.TRANSACTION_FAILURE

            # Sleep until the next boundary; after an overrun start right away
            deadline += period
            remaining = deadline - self.clock()
            if remaining > 0:
                await self.sleep(remaining)
            else:
                deadline = self.clock()

    # ------------------------------------------------------------------
    # Stopping
    # ------------------------------------------------------------------

    def _shutdown_write(self, handle: ActuatorHandle, address: ControlTableAddress, value: int) -> bool:
        try:
            return self.client.write(handle, address, value).ok
        except Exception as e:
            logging.warning(
                f"[ID:{handle.actuator_id:03d}] {address.name} write raised on shutdown: {e}",
                exc_info=True,
            )
            return False

    def shutdown(self) -> None:
        """Zero the goal current, disable torque and flush telemetry.

        Runs at most once. Each write is attempted for every actuator; failures
        are logged and never raised, and the flush always follows.
        """
        if self.state is LoopState.STOPPING or self.state is LoopState.STOPPED:
            return
        self.state = LoopState.STOPPING
        self.shutdown_count += 1

        for handle in self.handles:
            if not self._shutdown_write(handle, ControlTableAddress.GOAL_CURRENT, 0):
                logging.warning(f"[ID:{handle.actuator_id:03d}] Failed to zero goal current on shutdown")
            if not self._shutdown_write(handle, ControlTableAddress.TORQUE_ENABLE, TORQUE_DISABLE):
                logging.warning(f"[ID:{handle.actuator_id:03d}] Failed to disable torque on shutdown")
            else:
                logging.info(f"Torque disabled on actuator {handle.actuator_id}")

        try:
            self.recorder.flush(self.store)
        except OSError as e:
            logging.error(f"Failed to save telemetry: {e}", exc_info=True)

        self.state = LoopState.STOPPED

    async def run(self) -> RunResult:
        """Set up, run and shut down.

        Setup failure is reported through the result, not raised. Shutdown
        runs even if the loop raises.
        """
        try:
            try:
                self.setup()
            except SetupError as e:
                logging.error(f"Setup failed: {e}")
                self.exit_reason = ExitReason.SETUP_FAILURE
            else:
                logging.info(f"{TERM_BLUE}✓ Running current control{TERM_RESET}")
                self.exit_reason = await self.run_loop()
                logging.info(f"Stopping: {self.exit_reason.value}")
        finally:
            self.shutdown()

        return RunResult(
            exit_reason=self.exit_reason,
            ticks=self.ticks,
            samples_recorded=len(self.recorder),
            failed_ticks=self.failed_ticks,
            output_path=self.recorder.output_path,
        )
