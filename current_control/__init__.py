"""Current Control - Point-to-Point Moves for Serial-Bus Servo Actuators

Drives one or more Dynamixel-style actuators through a timed move in current
(torque) control mode, closing a PD loop on measured position and recording
telemetry for offline analysis.

## Architecture Overview

The system is a fixed-period control loop layered over a half-duplex bus:

### Layer 1: Transport (transport.py)
Wraps the Dynamixel SDK port and Protocol 2.0 packet handlers.
- Sized register reads and writes with the SDK per-packet timeout
- Serial exceptions reported as a failed transaction
- Output: communication result, device error byte and raw value

### Layer 2: Registers (control_table.py, register_client.py)
Typed reads and writes of the actuator control table.
- Width and signedness per address
- Device error bits decoded and logged
- Output: ReadResult / WriteResult

### Layer 3: Setup (setup_sequence.py)
Brings an actuator from torque-off to torque-on in current mode.
- Disable torque, select current mode, zero goal, apply limits, enable torque
- Any failed write aborts with the last completed state

### Layer 4: Control (trajectory.py, controller.py, orchestrator.py)
Tracks a linear position ramp with a PD current command.
- Trajectory clamped to the move segment
- Command clamped to the configured current range
- Shutdown zeroes the goal current and disables torque

## Modules

- `config.py` - Run parameters and defaults
- `control_table.py` - Register addresses, operating modes and error bits
- `transport.py` - Dynamixel SDK bus adapter
- `register_client.py` - Typed register access
- `setup_sequence.py` - Actuator setup state machine
- `trajectory.py` - Linear position trajectory
- `controller.py` - PD current controller
- `telemetry.py` / `telemetry_store.py` - Sample buffer and CSV output
- `stop_signal.py` - Stop flag and operator input watcher
- `orchestrator.py` - Control loop and shutdown
- `cli.py` - Command-line entry point
- `visualization.py` / `plot_results.py` - Telemetry plots

## Quick Start

```bash
python -m current_control --ids 1 --duration 3.0
python -m current_control.plot_results --save
```

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"

# Export key classes for convenience
from current_control.controller import CurrentController
from current_control.orchestrator import ControlLoop, ExitReason, RunResult
from current_control.register_client import ActuatorHandle, RegisterClient
from current_control.setup_sequence import SetupSequence
from current_control.stop_signal import StopSignal
from current_control.telemetry import Sample, TelemetryRecorder
from current_control.trajectory import LinearTrajectory

__all__ = [
    "ActuatorHandle",
    "RegisterClient",
    "SetupSequence",
    "LinearTrajectory",
    "CurrentController",
    "Sample",
    "TelemetryRecorder",
    "StopSignal",
    "ControlLoop",
    "ExitReason",
    "RunResult",
]
