#!/usr/bin/env python3
"""AQA Assembly VM Command Line Interface.

Run assembly programs without installing the package.

Usage:
    python main.py programs/sum_1_to_10.assembly
    python main.py programs/fibonacci.assembly --trace
    python main.py
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from aqa_vm.cli import main


if __name__ == "__main__":
    sys.exit(main())
