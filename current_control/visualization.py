"""
Visualization utilities for run telemetry.

This module loads a telemetry CSV into numpy arrays and plots measured
position and current against time for every actuator in the run.
"""

from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from current_control.config import ENCODER_COUNTS_PER_REV, PLOT_BLUE, PLOT_ORANGE, PLOT_TAUPE
from current_control.telemetry_store import read_samples


def parse_telemetry(filepath: Path) -> Dict[str, np.ndarray]:
    """Parse a telemetry CSV into numpy arrays.

    Args:
        filepath: Path to the telemetry CSV file.

    Returns:
        Dictionary with key 'time' plus 'position<i>' and 'current<i>' for
        each actuator i (1-based). Each value is a numpy array.

    Raises:
        FileNotFoundError: If the CSV file does not exist.
        ValueError: If the header is not a telemetry header.
    """
    samples = read_samples(filepath)
    data: Dict[str, np.ndarray] = {
        "time": np.array([s.elapsed_time for s in samples], dtype=float)
    }
    count = len(samples[0].positions) if samples else 1
    for i in range(count):
        data[f"position{i + 1}"] = np.array([s.positions[i] for s in samples], dtype=float)
        data[f"current{i + 1}"] = np.array([s.currents[i] for s in samples], dtype=float)
    return data


def counts_to_degrees(counts: np.ndarray) -> np.ndarray:
    """Convert encoder counts to output-shaft degrees."""
    return counts * (360.0 / ENCODER_COUNTS_PER_REV)


def plot_telemetry(
    data: Dict[str, np.ndarray], title: str = "Telemetry", save_path: Optional[Path] = None
) -> Figure:
    """Plot position and current over time for each actuator.

    Args:
        data: Dictionary as returned by ``parse_telemetry``.
        title: Plot title prefix.
        save_path: Optional path to save the figure.

    Returns:
        Matplotlib figure object.
    """
    count = sum(1 for key in data if key.startswith("position"))
    fig, axes = plt.subplots(2, count, figsize=(6 * count, 8), squeeze=False)
    t = data["time"]

    for i in range(count):
        ax_pos, ax_cur = axes[0][i], axes[1][i]
        position = data[f"position{i + 1}"]

        # Displacement from start, in degrees
        if len(position) > 0:
            ax_pos.plot(t, counts_to_degrees(position - position[0]), color=PLOT_ORANGE, linewidth=1.5)
        ax_pos.set_xlabel("Time (s)")
        ax_pos.set_ylabel("Displacement (deg)")
        ax_pos.set_title(f"{title} - Actuator {i + 1} Position")
        ax_pos.grid(True, alpha=0.3, color=PLOT_TAUPE)

        ax_cur.plot(t, data[f"current{i + 1}"], color=PLOT_BLUE, linewidth=1.0)
        ax_cur.axhline(0.0, color=PLOT_TAUPE, linewidth=0.8, linestyle="--")
        ax_cur.set_xlabel("Time (s)")
        ax_cur.set_ylabel("Current (native units)")
        ax_cur.set_title(f"{title} - Actuator {i + 1} Current")
        ax_cur.grid(True, alpha=0.3, color=PLOT_TAUPE)

    fig.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")

    return fig


def plot_run_summary(csv_path: Path, save_plots: bool = False, show_plots: bool = True) -> Figure:
    """Generate the summary plot for one telemetry file.

    Args:
        csv_path: Telemetry CSV file.
        save_plots: If True, save a PNG next to the CSV.
        show_plots: If True, display plots interactively.

    Returns:
        The summary figure.

    Raises:
        FileNotFoundError: If the CSV file is not found.
    """
    data = parse_telemetry(csv_path)
    save_path = csv_path.with_suffix(".png") if save_plots else None
    fig = plot_telemetry(data, title=csv_path.stem, save_path=save_path)
    if show_plots:
        plt.show()
    return fig
