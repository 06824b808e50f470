"""
Integration Tests Package for the ParkWise parking core

Integration tests run the application services end to end against an
in-memory SQLite database (one fresh database per test) with the in-memory
message queue standing in for Redis.

Integration tests focus on:
1. Gate flows: entry, exit, billing and events
2. Slot inventory rules and maintenance transitions
3. Overstay monitoring and dashboard figures
4. The command boundary and its structured errors
"""

import sys
import unittest
from datetime import datetime
from pathlib import Path

# Make the src/ layout importable when running without an installed package
SRC_DIR = Path(__file__).resolve().parents[2] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from parkwise.infrastructure.config import AppConfig  # noqa: E402
from parkwise.infrastructure.factories import ServiceFactory  # noqa: E402


class IntegrationTestBase(unittest.TestCase):
    """Fresh application over an empty in-memory database"""

    NOW = datetime(2024, 3, 15, 18, 0)

    def setUp(self):
        self.config = AppConfig(database_url="sqlite://")
        self.app = ServiceFactory(self.config).create_application()
        self.addCleanup(self.app.close)

        self.parking = self.app.parking_service
        self.slots = self.app.slot_service
        self.queue = self.app.message_queue

    def seed(self, floors=("B1",), slots_per_floor=15):
        """B1 layout: 01-02 accessible, 03-04 EV, 05-08 compact, 09-15 regular"""
        return self.slots.seed_floors(list(floors), slots_per_floor)

    def park(self, plate, vehicle_type="CAR", entry_time=None, **kwargs):
        return self.parking.assign_slot(plate, vehicle_type, entry_time=entry_time or self.NOW, **kwargs)

    def messages(self, event_type):
        return self.queue.get_messages(f"parkwise.{event_type}")
