"""
Main entry point when running the current_control module with python -m.
"""

import sys

from current_control.cli import main

if __name__ == "__main__":
    sys.exit(main())
