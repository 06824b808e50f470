"""
Unit Tests Package for the ParkWise parking core

Unit tests exercise the domain layer and infrastructure pieces in
isolation; Redis is replaced with mocks.
"""

import sys
from pathlib import Path

# Make the src/ layout importable when running without an installed package
SRC_DIR = Path(__file__).resolve().parents[2] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))
