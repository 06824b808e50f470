# File: src/parkwise/__init__.py
"""
ParkWise - parking lot management core

Slot assignment, duration based billing and overstay detection over a
transactional slot/session store.
"""

__version__ = "1.0.0"
