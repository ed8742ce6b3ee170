"""In-memory telemetry buffer for one run.

One ``Sample`` is appended per completed tick. The buffer is flushed to
persistent storage exactly once, when the run stops, and is frozen from then
on.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Tuple

if TYPE_CHECKING:
    from current_control.telemetry_store import TelemetryStore


@dataclass(frozen=True)
class Sample:
    """State captured in one completed tick.

    ``currents`` and ``positions`` hold one entry per actuator, in handle
    order.
    """

    elapsed_time: float
    currents: Tuple[int, ...]
    positions: Tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.currents) != len(self.positions):
            raise ValueError(
                f"Sample has {len(self.currents)} currents but {len(self.positions)} positions"
            )

    @property
    def present_current(self) -> int:
        return self.currents[0]

    @property
    def present_position(self) -> int:
        return self.positions[0]


class TelemetryRecorder:
    """Append-only sample buffer with a one-shot flush.

    Attributes:
        actuator_count: Number of actuators each sample covers.
        output_path: Where the buffer was flushed, None until then.
    """

    def __init__(self, actuator_count: int) -> None:
        if actuator_count < 1:
            raise ValueError(f"actuator_count must be at least 1, got {actuator_count}")
        self.actuator_count = actuator_count
        self.output_path: Optional[Path] = None
        self._samples: List[Sample] = []
        self._flushed = False

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def samples(self) -> Tuple[Sample, ...]:
        return tuple(self._samples)

    @property
    def flushed(self) -> bool:
        return self._flushed

    def record(self, sample: Sample) -> None:
        """Append a sample.

        Raises:
            RuntimeError: If the buffer has already been flushed.
            ValueError: If the sample has the wrong width or goes back in time.
        """
        if self._flushed:
            raise RuntimeError("Telemetry buffer is frozen after flush")
        if len(sample.positions) != self.actuator_count:
            raise ValueError(
                f"Expected {self.actuator_count} actuators per sample, got {len(sample.positions)}"
            )
        if self._samples and sample.elapsed_time < self._samples[-1].elapsed_time:
            raise ValueError(
                f"Sample time {sample.elapsed_time} precedes {self._samples[-1].elapsed_time}"
            )
        self._samples.append(sample)

    def flush(self, store: "TelemetryStore") -> Path:
        """Write the buffer to ``store`` and freeze it.

        Returns:
            Path of the written file.

        Raises:
            RuntimeError: If called more than once.
        """
        if self._flushed:
            raise RuntimeError("Telemetry buffer has already been flushed")
        self._flushed = True
        self.output_path = store.write(self._samples, self.actuator_count)
        return self.output_path
