#!/usr/bin/env python3
"""
Integration tests for the slot inventory service
"""

import unittest

from pydantic import ValidationError

from parkwise.application.dtos import SlotCreateDTO, SlotQueryDTO, SlotUpdateDTO
from parkwise.domain.exceptions import ConflictError, InvalidInputError, SlotNotFoundError

from . import IntegrationTestBase


class TestSeeding(IntegrationTestBase):

    def test_seed_creates_standard_layout(self):
        result = self.seed(floors=("b1", "B2"))
        self.assertEqual(result.created, 30)
        self.assertEqual(result.skipped, 0)
        self.assertEqual(result.floors, ["B1", "B2"])

        self.assertEqual(self.slots.get_slot("B2-01").slot_type, "HANDICAP_ACCESSIBLE")
        self.assertEqual(self.slots.get_slot("B2-04").slot_type, "EV")
        self.assertEqual(self.slots.get_slot("B2-08").slot_type, "COMPACT")
        self.assertEqual(self.slots.get_slot("B2-15").slot_type, "REGULAR")

    def test_reseed_skips_existing_numbers(self):
        self.seed()
        result = self.seed(floors=("B1", "B2"))
        self.assertEqual(result.created, 15)
        self.assertEqual(result.skipped, 15)


class TestSlotQueries(IntegrationTestBase):

    def setUp(self):
        super().setUp()
        self.seed(floors=("B1", "B2"))

    def test_list_with_filters_and_pages(self):
        page = self.slots.list_slots(SlotQueryDTO(page_size=10))
        self.assertEqual(page.total, 30)
        self.assertEqual(page.total_pages, 3)
        self.assertEqual(page.items[0].slot_number, "B1-01")
        self.assertEqual(page.items[-1].slot_number, "B1-10")

        evs = self.slots.list_slots(SlotQueryDTO(slot_type="EV", floor="b2"))
        self.assertEqual([s.slot_number for s in evs.items], ["B2-03", "B2-04"])

        self.slots.set_maintenance("B1-12")
        maintenance = self.slots.list_slots(SlotQueryDTO(status="MAINTENANCE"))
        self.assertEqual([s.slot_number for s in maintenance.items], ["B1-12"])

        text = self.slots.list_slots(SlotQueryDTO(search="1-1"))
        self.assertEqual(text.total, 6)

    def test_filters_are_case_insensitive(self):
        evs = self.slots.list_slots(SlotQueryDTO(slot_type="ev"))
        self.assertEqual(evs.total, 4)

        self.slots.set_maintenance("B2-05")
        maintenance = self.slots.list_slots(SlotQueryDTO(status="maintenance", slot_type=" compact "))
        self.assertEqual([s.slot_number for s in maintenance.items], ["B2-05"])

    def test_invalid_query(self):
        with self.assertRaises(ValidationError):
            SlotQueryDTO(page_size=500)
        with self.assertRaises(ValidationError):
            SlotQueryDTO(slot_type="garage")

    def test_get_slot_by_id_or_number(self):
        slot = self.slots.get_slot("b1-07")
        self.assertEqual(slot.floor, "B1")
        self.assertEqual(self.slots.get_slot(slot.id).slot_number, "B1-07")

        with self.assertRaises(SlotNotFoundError):
            self.slots.get_slot("B9-01")

    def test_available_slots_for_vehicle(self):
        self.park("CAR01", "CAR")
        result = self.slots.get_available_slots("BIKE")

        self.assertEqual(result.vehicle_type, "BIKE")
        self.assertEqual(list(result.by_type), ["REGULAR"])
        self.assertEqual(result.total, 13)
        self.assertNotIn("B1-09", [s.slot_number for s in result.by_type["REGULAR"]])

        everything = self.slots.get_available_slots()
        self.assertEqual(everything.total, 29)
        self.assertEqual(len(everything.by_type["EV"]), 4)

    def test_availability_map(self):
        self.park("CAR01", "CAR")
        self.slots.set_maintenance("B2-01")

        result = self.slots.get_availability_map()
        self.assertEqual(result.total, 30)
        self.assertEqual(result.available, 28)

        b1, b2 = result.areas
        self.assertEqual((b1.area, b1.occupied, b1.maintenance), ("B1", 1, 0))
        self.assertEqual((b2.area, b2.available, b2.maintenance), ("B2", 14, 1))
        self.assertEqual(b2.by_type["HANDICAP_ACCESSIBLE"], {"total": 2, "available": 1})


class TestSlotCommands(IntegrationTestBase):

    def setUp(self):
        super().setUp()
        self.seed()

    def test_create_slot(self):
        created = self.slots.create_slot(SlotCreateDTO(slot_number="c1-01", slot_type="EV"))
        self.assertEqual(created.slot_number, "C1-01")
        self.assertEqual(created.floor, "C1")
        self.assertEqual(created.status, "AVAILABLE")

        with self.assertRaises(ConflictError):
            self.slots.create_slot(SlotCreateDTO(slot_number="B1-01"))

    def test_bulk_create_is_all_or_nothing(self):
        with self.assertRaises(ConflictError) as ctx:
            self.slots.bulk_create([
                SlotCreateDTO(slot_number="C1-01"),
                SlotCreateDTO(slot_number="B1-02"),
            ])
        self.assertEqual(ctx.exception.details["slot_numbers"], ["B1-02"])
        with self.assertRaises(SlotNotFoundError):
            self.slots.get_slot("C1-01")

        with self.assertRaises(ConflictError):
            self.slots.bulk_create([SlotCreateDTO(slot_number="C1-01"), SlotCreateDTO(slot_number="c1-01")])
        with self.assertRaises(InvalidInputError):
            self.slots.bulk_create([])

        created = self.slots.bulk_create([
            SlotCreateDTO(slot_number="C1-01", slot_type="COMPACT"),
            SlotCreateDTO(slot_number="C1-02"),
        ])
        self.assertEqual([s.slot_number for s in created], ["C1-01", "C1-02"])

    def test_update_number_and_type(self):
        updated = self.slots.update_slot("B1-15", SlotUpdateDTO(slot_number="B1-16", slot_type="COMPACT"))
        self.assertEqual(updated.slot_number, "B1-16")
        self.assertEqual(updated.slot_type, "COMPACT")
        self.assertEqual(self.slots.get_slot("B1-16").id, updated.id)

        with self.assertRaises(ConflictError):
            self.slots.update_slot("B1-16", SlotUpdateDTO(slot_number="B1-14"))

    def test_occupied_slot_cannot_be_modified(self):
        self.park("CAR01", "CAR")
        with self.assertRaises(ConflictError):
            self.slots.update_slot("B1-09", SlotUpdateDTO(slot_type="COMPACT"))
        with self.assertRaises(ConflictError):
            self.slots.update_slot("B1-09", SlotUpdateDTO(status="MAINTENANCE"))
        with self.assertRaises(ConflictError):
            self.slots.set_maintenance("B1-09")

    def test_occupied_status_is_reserved_for_sessions(self):
        with self.assertRaises(InvalidInputError):
            self.slots.update_slot("B1-10", SlotUpdateDTO(status="OCCUPIED"))

    def test_maintenance_round_trip(self):
        slot = self.slots.set_maintenance("B1-10")
        self.assertEqual(slot.status, "MAINTENANCE")
        self.assertEqual(self.slots.set_maintenance("B1-10").status, "MAINTENANCE")

        released = self.slots.release_maintenance("B1-10")
        self.assertEqual(released.status, "AVAILABLE")
        with self.assertRaises(ConflictError):
            self.slots.release_maintenance("B1-10")

        events = self.messages("slot.status_changed")
        self.assertEqual(len(events), 2)
        self.assertEqual(events[0].data["status"], "MAINTENANCE")

    def test_update_status_through_dto(self):
        updated = self.slots.update_slot("B1-11", SlotUpdateDTO(status="MAINTENANCE"))
        self.assertEqual(updated.status, "MAINTENANCE")
        self.assertEqual(self.slots.update_slot("B1-11", SlotUpdateDTO(status="AVAILABLE")).status, "AVAILABLE")


if __name__ == '__main__':
    unittest.main()
