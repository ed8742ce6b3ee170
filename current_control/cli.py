#!/usr/bin/env python3
"""
Command-line entry point for a current-control run.

Opens the serial bus, runs the control loop over the configured actuators,
watches stdin for an operator stop and saves telemetry when the run ends.
The port is released only after the shutdown writes and the telemetry
flush have completed.
"""

import argparse
import asyncio
import logging
import signal
import sys
from contextlib import nullcontext
from typing import List, Optional

from current_control.config import (
    ACTUATOR_IDS,
    BAUD_RATE,
    CONTROL_PERIOD,
    CURRENT_LIMIT,
    DERIVATIVE_SOURCE,
    DEVICE_NAME,
    KD,
    KI,
    KP,
    MAX_CONSECUTIVE_FAILURES,
    MAX_CURRENT,
    MIN_CURRENT,
    MOVE_DURATION,
    OUTPUT_DIR,
    STOP_INPUT,
    TERM_BLUE,
    TERM_ORANGE,
    TERM_RESET,
    TORQUE_LIMIT,
    RunConfig,
)
from current_control.orchestrator import ControlLoop, ExitReason, RunResult
from current_control.register_client import ActuatorHandle, RegisterClient
from current_control.stop_signal import InputWatcher, StopSignal, preserved_terminal
from current_control.transport import DynamixelBus


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno == logging.INFO:
            return record.getMessage()
        return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Point-to-point move under current control with telemetry capture",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single actuator, default 90 degree move in 3 s
  python -m current_control

  # Two actuators moving in opposite directions, labelled output file
  python -m current_control --ids 1 2 --duration 1.0 --kp 5 --kd 0.5 \\
      --min-current 0 --max-current 500 --torque-limit 500 --label run1
        """,
    )
    parser.add_argument("--port", default=DEVICE_NAME, help=f"Serial device (default: {DEVICE_NAME})")
    parser.add_argument("--baud", type=int, default=BAUD_RATE, help=f"Baud rate (default: {BAUD_RATE})")
    parser.add_argument(
        "--ids", type=int, nargs="+", default=list(ACTUATOR_IDS), help="Actuator IDs in order"
    )
    parser.add_argument(
        "--displacement",
        type=int,
        nargs="+",
        default=None,
        help="Per-actuator displacement in encoder counts "
        "(default: 1024, alternating sign for additional actuators)",
    )
    parser.add_argument("--duration", type=float, default=MOVE_DURATION, help="Move duration (s)")
    parser.add_argument("--period", type=float, default=CONTROL_PERIOD, help="Control period (s)")
    parser.add_argument("--kp", type=float, default=KP, help="Proportional gain")
    parser.add_argument("--kd", type=float, default=KD, help="Derivative gain")
    parser.add_argument("--ki", type=float, default=KI, help="Integral gain")
    parser.add_argument("--max-current", type=int, default=MAX_CURRENT, help="Upper current clamp")
    parser.add_argument(
        "--min-current",
        type=int,
        default=MIN_CURRENT,
        help="Lower current clamp (default: -max-current)",
    )
    parser.add_argument(
        "--current-limit", type=int, default=CURRENT_LIMIT, help="Current Limit register value"
    )
    parser.add_argument(
        "--torque-limit", type=int, default=TORQUE_LIMIT, help="Torque Limit register value"
    )
    parser.add_argument(
        "--derivative",
        choices=["error", "velocity"],
        default=DERIVATIVE_SOURCE,
        help="Derivative term input",
    )
    parser.add_argument(
        "--max-failures",
        type=int,
        default=MAX_CONSECUTIVE_FAILURES,
        help="Consecutive failed ticks before stopping",
    )
    parser.add_argument("--output-dir", default=OUTPUT_DIR, help="Base directory for results/")
    parser.add_argument("--label", default=None, help="Run label used as the telemetry file name")
    parser.add_argument(
        "--stop-input",
        choices=["line", "key", "none"],
        default=STOP_INPUT,
        help="Operator stop input (default: %(default)s)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    return parser


def config_from_args(args: argparse.Namespace) -> RunConfig:
    """Build a RunConfig from parsed arguments.

    Raises:
        ValueError: If the resulting configuration is invalid.
    """
    return RunConfig(
        device_name=args.port,
        baud_rate=args.baud,
        actuator_ids=tuple(args.ids),
        displacements=tuple(args.displacement) if args.displacement else (),
        duration=args.duration,
        period=args.period,
        kp=args.kp,
        kd=args.kd,
        ki=args.ki,
        max_current=args.max_current,
        min_current=args.min_current,
        current_limit=args.current_limit,
        torque_limit=args.torque_limit,
        derivative_source=args.derivative,
        max_consecutive_failures=args.max_failures,
        output_dir=args.output_dir,
        label=args.label,
        stop_input=args.stop_input,
    )


async def run(config: RunConfig, bus: Optional[DynamixelBus] = None) -> Optional[RunResult]:
    """Open the bus, run the control loop and release the bus.

    Args:
        config: Run parameters.
        bus: Bus to use (default: a DynamixelBus on config.device_name).

    Returns:
        The run result, or None if the port could not be opened or configured.
    """
    bus = bus if bus is not None else DynamixelBus(config.device_name)
    if not bus.open():
        logging.error(f"Failed to open the port {config.device_name}")
        return None
    logging.info(f"{TERM_BLUE}✓ Opened {config.device_name}{TERM_RESET}")

    handles = [ActuatorHandle(actuator_id) for actuator_id in config.actuator_ids]
    try:
        if not bus.set_baud_rate(config.baud_rate):
            logging.error(f"Failed to change the baudrate to {config.baud_rate}")
            return None
        logging.info(f"{TERM_BLUE}✓ Baudrate set to {config.baud_rate}{TERM_RESET}")

        client = RegisterClient(bus)
        stop_signal = StopSignal()
        control_loop = ControlLoop(client, handles, config, stop_signal=stop_signal)

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            """Handle shutdown signals (SIGINT, SIGTERM)."""
            logging.info("\nShutdown signal received...")
            stop_signal.set("signal")

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, signal_handler)
            except (NotImplementedError, RuntimeError):
                # Not available on this platform or outside the main thread
                pass

        # Saved before the watcher can switch the terminal to cbreak
        with preserved_terminal(sys.stdin) if config.stop_input == "key" else nullcontext():
            if config.stop_input != "none":
                watcher = InputWatcher(stop_signal, mode=config.stop_input)
                logging.info(watcher.prompt())
                watcher.start()

            return await control_loop.run()
    finally:
        bus.close()
        for handle in handles:
            handle.invalidate()


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run, and map the outcome to an exit code."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    try:
        result = asyncio.run(run(config))
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        return 130

    if result is None or result.exit_reason is ExitReason.SETUP_FAILURE:
        return 1
    logging.info(
        f"{TERM_ORANGE}→ {result.ticks} ticks, {result.samples_recorded} samples, "
        f"{result.failed_ticks} failed ({result.exit_reason.value}){TERM_RESET}"
    )
    return 0 if result.exit_reason is not ExitReason.TRANSACTION_FAILURE else 1


if __name__ == "__main__":
    sys.exit(main())
