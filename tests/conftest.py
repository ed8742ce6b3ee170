import io
import termios
from typing import Callable, Dict, List, Tuple

import matplotlib
import pytest
from fake_bus import FakeActuator, FakePacketHandler, FakePortHandler, open_bus

from current_control.register_client import ActuatorHandle, RegisterClient
from current_control.transport import DynamixelBus

# Headless plotting for the visualization tests
matplotlib.use("Agg")


@pytest.fixture
def bus() -> Callable[..., Tuple[FakePacketHandler, DynamixelBus]]:
    return open_bus


@pytest.fixture
def actuator() -> FakeActuator:
    return FakeActuator(1, position=2048)


@pytest.fixture
def device(actuator: FakeActuator) -> FakePacketHandler:
    return FakePacketHandler([actuator])


@pytest.fixture
def client(device: FakePacketHandler) -> RegisterClient:
    dxl_bus = DynamixelBus("/dev/fake", port_handler=FakePortHandler(), packet_handler=device)
    assert dxl_bus.open()
    return RegisterClient(dxl_bus)


@pytest.fixture
def handle() -> ActuatorHandle:
    return ActuatorHandle(1)


class FakeTerminal(io.StringIO):
    """Input stream that reports itself as a terminal."""

    fd = 99

    def isatty(self) -> bool:
        return True

    def fileno(self) -> int:
        return self.fd


@pytest.fixture
def terminal(monkeypatch) -> Tuple[FakeTerminal, Dict[int, List[str]]]:
    """A terminal stream whose termios settings live in a dict."""
    attributes = {FakeTerminal.fd: ["cooked"]}
    monkeypatch.setattr(termios, "tcgetattr", lambda fd: list(attributes[fd]))
    monkeypatch.setattr(
        termios, "tcsetattr", lambda fd, when, settings: attributes.__setitem__(fd, list(settings))
    )
    return FakeTerminal(), attributes
