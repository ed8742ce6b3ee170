"""Cooperative stop flag and the operator input watcher that sets it.

The control loop polls ``StopSignal.is_set()`` once per tick. The watcher
runs on its own daemon thread, blocks on operator input and sets the signal
once. The signal carries no data besides its reason, so a
``threading.Event`` gives all the visibility the two tasks need.
"""

import logging
import sys
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TextIO


class StopSignal:
    """Write-once stop flag shared between the control loop and the watcher."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.reason: Optional[str] = None

    def set(self, reason: str = "stop requested") -> bool:
        """Set the flag. Only the first call records its reason.

        Returns:
            True if this call set the flag, False if it was already set.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


def wait_for_line(stream: TextIO) -> bool:
    """Block until the operator presses Enter.

    Returns:
        True on a line, False on end of input (no operator attached).
    """
    return stream.readline() != ""


def wait_for_key(stream: TextIO) -> bool:
    """Block until any key is pressed, with the terminal in cbreak mode.

    Falls back to ``wait_for_line`` when the stream is not a terminal.
    Terminal settings are restored before returning.
    """
    if not stream.isatty():
        return wait_for_line(stream)

    import termios
    import tty

    fd = stream.fileno()
    saved = termios.tcgetattr(fd)
    try:
        tty.setcbreak(fd)
        return stream.read(1) != ""
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


@contextmanager
def preserved_terminal(stream: TextIO) -> Iterator[None]:
    """Restore the terminal settings of ``stream`` on exit.

    A key-mode watcher still blocked in ``wait_for_key`` when the run ends
    dies with the interpreter and never restores the terminal itself. Hold
    this around the run on the main thread.
    """
    if not stream.isatty():
        yield
        return

    import termios

    fd = stream.fileno()
    saved = termios.tcgetattr(fd)
    try:
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


class InputWatcher(threading.Thread):
    """Daemon thread that sets the stop signal on operator input.

    Attributes:
        stop_signal: Signal to set.
        mode: "line" (Enter) or "key" (any key).
    """

    def __init__(
        self,
        stop_signal: StopSignal,
        mode: str = "line",
        stream: Optional[TextIO] = None,
        wait_fn: Optional[Callable[[TextIO], bool]] = None,
    ) -> None:
        super().__init__(daemon=True, name="InputWatcher")
        if mode not in ("line", "key"):
            raise ValueError(f"Unknown input mode: {mode}")
        self.stop_signal = stop_signal
        self.mode = mode
        self.stream = stream if stream is not None else sys.stdin
        self.wait_fn = wait_fn or (wait_for_key if mode == "key" else wait_for_line)

    def prompt(self) -> str:
        if self.mode == "key":
            return "Press any key to stop the actuators..."
        return "Press Enter to stop the actuators..."

    def run(self) -> None:
        if self.stop_signal.is_set():
            return
        if self.wait_fn(self.stream):
            if self.stop_signal.set("operator input"):
                logging.info("Key pressed! Stopping the actuators.")
        else:
            logging.debug("Input closed; operator stop unavailable")
