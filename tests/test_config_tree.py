from __future__ import annotations

import unittest

from app.core.config_tree import (
    area_in_items,
    collect_areas,
    collect_devices,
    collect_services,
    contains_area,
    contains_entity,
    entity_in_items,
    first_entity_id,
)


class TestPresenceSearch(unittest.TestCase):
    def test_entity_found_in_direct_field(self) -> None:
        trigger = {"platform": "state", "entity_id": "light.living_room"}
        self.assertTrue(contains_entity(trigger, "light.living_room"))

    def test_entity_found_in_target_list(self) -> None:
        action = {"action": "light.turn_on", "target": {"entity_id": ["light.kitchen", "light.living_room"]}}
        self.assertTrue(contains_entity(action, "light.living_room"))

    def test_entity_found_deep_in_choose_block(self) -> None:
        action = {
            "choose": [
                {
                    "conditions": [{"condition": "state", "entity_id": "sun.sun", "state": "below_horizon"}],
                    "sequence": [{"service": "light.turn_on", "data": {"entity_id": "light.porch"}}],
                }
            ]
        }
        self.assertTrue(contains_entity(action, "light.porch"))
        self.assertTrue(contains_entity(action, "sun.sun"))
        self.assertFalse(contains_entity(action, "light.garage"))

    def test_prefix_is_not_a_match(self) -> None:
        self.assertFalse(contains_entity({"entity_id": "light.living_room_lamp"}, "light.living_room"))

    def test_type_mismatches_are_no_match(self) -> None:
        items = [None, 42, 3.5, True, {"entity_id": 7}, {"area_id": {"nested": False}}, [[], {}]]
        self.assertFalse(entity_in_items(items, "light.x"))
        self.assertFalse(area_in_items(items, "kitchen"))

    def test_non_list_items_are_no_match(self) -> None:
        self.assertFalse(entity_in_items({"entity_id": "light.x"}, "light.x"))
        self.assertFalse(area_in_items(None, "kitchen"))

    def test_area_found_in_target_string_and_list(self) -> None:
        self.assertTrue(contains_area({"service": "light.turn_on", "target": {"area_id": "kitchen"}}, "kitchen"))
        self.assertTrue(contains_area({"target": {"area_id": ["hall", "kitchen"]}}, "kitchen"))
        self.assertTrue(contains_area({"area_id": "kitchen"}, "kitchen"))
        self.assertFalse(contains_area({"target": {"area_id": ["hall"]}}, "kitchen"))


class TestExtraction(unittest.TestCase):
    def test_services_from_both_keys_sorted_and_deduplicated(self) -> None:
        actions = [
            {"service": "light.turn_on"},
            {"action": "climate.set_temperature"},
            {"if": [], "then": [{"action": "light.turn_on"}, {"service": "notify.mobile"}]},
        ]
        self.assertEqual(["climate.set_temperature", "light.turn_on", "notify.mobile"], collect_services(actions))

    def test_service_lists_are_ignored(self) -> None:
        self.assertEqual([], collect_services([{"service": ["light.turn_on"]}]))

    def test_areas_collected_from_any_depth(self) -> None:
        actions = [
            {"service": "light.turn_on", "target": {"area_id": ["living_room", "hall"]}},
            {"metadata": {"anything": {"area_id": "attic"}}},
            {"area_id": 12},
        ]
        self.assertEqual(["attic", "hall", "living_room"], collect_areas(actions))

    def test_devices_collected_from_target_and_direct(self) -> None:
        actions = [
            {"device_id": "dev-b", "domain": "light", "type": "turn_on"},
            {"service": "light.turn_off", "target": {"device_id": ["dev-a", "dev-b"]}},
        ]
        self.assertEqual(["dev-a", "dev-b"], collect_devices(actions))

    def test_extraction_of_non_list_is_empty(self) -> None:
        self.assertEqual([], collect_services(None))
        self.assertEqual([], collect_areas({"area_id": "kitchen"}))

    def test_first_entity_id(self) -> None:
        self.assertEqual("light.a", first_entity_id({"entity_id": "light.a"}))
        self.assertEqual("light.b", first_entity_id({"entity_id": ["light.b", "light.c"]}))
        self.assertEqual("", first_entity_id({"entity_id": [1, "light.c"]}))
        self.assertEqual("", first_entity_id({"entity_id": []}))
        self.assertEqual("", first_entity_id("light.a"))


if __name__ == "__main__":
    unittest.main()
