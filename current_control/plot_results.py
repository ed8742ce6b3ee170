#!/usr/bin/env python3
"""
Standalone script to visualize telemetry from recorded runs.

This script loads a telemetry CSV from the results directory and plots
position and current over time for each actuator.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from current_control.config import TERM_BLUE, TERM_RESET
from current_control.visualization import plot_run_summary


def find_runs(results_dir: Path) -> List[Path]:
    """Return telemetry files in the results directory, oldest first.

    Raises:
        FileNotFoundError: If the results directory does not exist.
    """
    if not results_dir.exists():
        raise FileNotFoundError(f"Results directory not found: {results_dir}")
    return sorted(results_dir.glob("*.csv"), key=lambda p: p.stat().st_mtime)


def find_latest_run(results_dir: Path) -> Path:
    """Find the most recent telemetry file.

    Args:
        results_dir: Path to the results directory.

    Returns:
        Path to the most recently written telemetry CSV.

    Raises:
        FileNotFoundError: If no telemetry files are found.
    """
    runs = find_runs(results_dir)
    if not runs:
        raise FileNotFoundError(f"No telemetry files found in {results_dir}")
    return runs[-1]


def list_available_runs(results_dir: Path) -> None:
    """List all available telemetry files."""
    try:
        runs = find_runs(results_dir)
    except FileNotFoundError as e:
        logging.error(str(e))
        return

    if not runs:
        logging.info(f"No telemetry files found in {results_dir}")
        return

    logging.info("Available runs:")
    for i, run in enumerate(runs, 1):
        logging.info(f"  {i}. {run.name}")


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the plotting script."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    parser = argparse.ArgumentParser(
        description="Visualize telemetry from recorded runs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Plot the most recent run
  python -m current_control.plot_results

  # Plot a specific run by file name
  python -m current_control.plot_results --run run1.csv

  # Save the figure next to the CSV without opening a window
  python -m current_control.plot_results --save --no-show

  # List all available runs
  python -m current_control.plot_results --list
        """,
    )
    parser.add_argument(
        "--run",
        type=str,
        default=None,
        help="Telemetry file name inside the results directory. "
        "If not specified, plots the most recent run.",
    )
    parser.add_argument(
        "--results-dir",
        type=str,
        default="results",
        help="Path to the results directory (default: results)",
    )
    parser.add_argument(
        "--save", action="store_true", help="Save the plot as PNG next to the telemetry file"
    )
    parser.add_argument(
        "--no-show",
        action="store_true",
        help="Do not display plots interactively (useful with --save)",
    )
    parser.add_argument("--list", action="store_true", help="List all available runs and exit")

    args = parser.parse_args(argv)
    results_dir = Path(args.results_dir)

    if args.list:
        list_available_runs(results_dir)
        return

    if args.run:
        csv_path = results_dir / args.run
        if not csv_path.exists():
            logging.error(f"Error: Telemetry file not found: {csv_path}")
            list_available_runs(results_dir)
            sys.exit(1)
    else:
        try:
            csv_path = find_latest_run(results_dir)
            logging.info(f"{TERM_BLUE}Plotting most recent run: {csv_path.name}{TERM_RESET}")
        except FileNotFoundError as e:
            logging.error(f"Error: {e}")
            sys.exit(1)

    try:
        plot_run_summary(csv_path, save_plots=args.save, show_plots=not args.no_show)
    except (FileNotFoundError, ValueError) as e:
        logging.error(f"Error: {e}")
        sys.exit(1)

    if args.save:
        logging.info(f"{TERM_BLUE}✓ Saved plot to {csv_path.with_suffix('.png').name}{TERM_RESET}")


if __name__ == "__main__":
    main()
