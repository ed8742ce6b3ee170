"""CSV persistence for run telemetry.

File layout:
- One actuator: ``Time (s),Current (mA),Position``
- Several actuators: ``Time(s),Position1,Current1,Position2,Current2,...``

One row per sample, in capture order. Files are named after an operator label
when one is given, otherwise after the run's start timestamp, and stored under
``<output_dir>/results/``.
"""

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from current_control.config import TERM_BLUE, TERM_RESET, TIME_DECIMALS
from current_control.telemetry import Sample

SINGLE_HEADER = ["Time (s)", "Current (mA)", "Position"]


def csv_header(actuator_count: int) -> List[str]:
    """Column names for a telemetry file covering ``actuator_count`` actuators."""
    if actuator_count == 1:
        return list(SINGLE_HEADER)
    header = ["Time(s)"]
    for i in range(1, actuator_count + 1):
        header += [f"Position{i}", f"Current{i}"]
    return header


def run_file_name(label: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Return a run-unique file name.

    Args:
        label: Operator-supplied run label (e.g. "run1"). Used verbatim.
        now: Timestamp for unlabelled runs (default: current time).

    Returns:
        ``<label>.csv`` or ``<YYYYmmdd_HHMMSS>_data.csv``.

    Raises:
        ValueError: If the label contains a path separator.
    """
    if label:
        if "/" in label or "\\" in label:
            raise ValueError(f"Run label must not contain path separators: {label!r}")
        return f"{label}.csv"
    timestamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_data.csv"


def read_samples(path: Path) -> List[Sample]:
    """Parse a telemetry CSV back into samples.

    Args:
        path: File written by ``TelemetryStore``.

    Returns:
        Samples in file order.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the header is not a telemetry header.
    """
    with open(path, newline="") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if header is None:
            raise ValueError(f"Empty telemetry file: {path}")

        if header == SINGLE_HEADER:
            return [Sample(float(row[0]), (int(row[1]),), (int(row[2]),)) for row in reader if row]

        count = (len(header) - 1) // 2
        if count < 1 or header != csv_header(count):
            raise ValueError(f"Unexpected telemetry header: {header}")
        samples = []
        for row in reader:
            if not row:
                continue
            positions = tuple(int(row[1 + 2 * i]) for i in range(count))
            currents = tuple(int(row[2 + 2 * i]) for i in range(count))
            samples.append(Sample(float(row[0]), currents, positions))
        return samples


class TelemetryStore:
    """Writes a run's telemetry buffer to a CSV file.

    Attributes:
        results_dir: Directory the file is written to.
        output_path: Full path of the telemetry file.
    """

    def __init__(
        self,
        output_dir: str = ".",
        label: Optional[str] = None,
        time_decimals: int = TIME_DECIMALS,
    ) -> None:
        """Initialize the store and choose the output file name.

        Args:
            output_dir: Base directory for output files (default: current directory).
            label: Optional operator label used as the file name.
            time_decimals: Decimal places written for elapsed time.

        Raises:
            ValueError: If output_dir exists but is not a directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.results_dir: Path = output_path / "results"
        self.output_path: Path = self.results_dir / run_file_name(label)
        self.time_decimals = time_decimals

    def write(self, samples: Iterable[Sample], actuator_count: int) -> Path:
        """Write all samples, header first, in capture order.

        Returns:
            Path of the written file.
        """
        self.results_dir.mkdir(parents=True, exist_ok=True)
        rows = 0
        with open(self.output_path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(csv_header(actuator_count))
            for sample in samples:
                time_str = f"{sample.elapsed_time:.{self.time_decimals}f}"
                if actuator_count == 1:
                    writer.writerow([time_str, sample.currents[0], sample.positions[0]])
                else:
                    row = [time_str]
                    for position, current in zip(sample.positions, sample.currents):
                        row += [position, current]
                    writer.writerow(row)
                rows += 1

        logging.info(
            f"{TERM_BLUE}✓ Saved {rows} samples to results/{self.output_path.name}{TERM_RESET}"
        )
        return self.output_path
