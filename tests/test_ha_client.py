from __future__ import annotations

import json
import unittest
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, patch

from app.core import settings
from app.services import ha_client


class FakeSocket:
    def __init__(self, messages: list[dict[str, Any]]) -> None:
        self.messages = [json.dumps(m) for m in messages]
        self.sent: list[dict[str, Any]] = []

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    async def recv(self) -> str:
        return self.messages.pop(0)


class TestNormalizeAutomationConfig(unittest.TestCase):
    def test_plural_keys(self) -> None:
        config = ha_client.normalize_automation_config(
            {
                "alias": "Night mode",
                "triggers": [{"trigger": "time", "at": "23:00:00"}],
                "conditions": [],
                "actions": [{"action": "light.turn_off"}],
                "variables": {"level": 10},
            }
        )
        self.assertEqual("Night mode", config["alias"])
        self.assertEqual([{"trigger": "time", "at": "23:00:00"}], config["triggers"])
        self.assertEqual([], config["conditions"])
        self.assertEqual({"level": 10}, config["variables"])

    def test_singular_keys_and_lone_mapping(self) -> None:
        config = ha_client.normalize_automation_config(
            {"trigger": {"platform": "state", "entity_id": "light.a"}, "action": [{"service": "light.turn_on"}]}
        )
        self.assertEqual([{"platform": "state", "entity_id": "light.a"}], config["triggers"])
        self.assertEqual([], config["conditions"])
        self.assertEqual([{"service": "light.turn_on"}], config["actions"])
        self.assertEqual("", config["alias"])
        self.assertEqual({}, config["variables"])

    def test_non_mapping_is_none(self) -> None:
        self.assertIsNone(ha_client.normalize_automation_config(None))
        self.assertIsNone(ha_client.normalize_automation_config(["trigger"]))


class TestWebsocketHelpers(unittest.IsolatedAsyncioTestCase):
    def test_websocket_url(self) -> None:
        self.assertEqual("ws://ha.local:8123/api/websocket", ha_client._ha_websocket_url("http://ha.local:8123/"))
        self.assertEqual("wss://ha.example.com/api/websocket", ha_client._ha_websocket_url("https://ha.example.com"))

    async def test_send_command_skips_events(self) -> None:
        ws = FakeSocket(
            [
                {"type": "event", "id": 1, "event": {}},
                {"type": "result", "id": 2, "success": True, "result": "other"},
                {"type": "result", "id": 1, "success": True, "result": ["row"]},
            ]
        )
        response = await ha_client._ha_ws_send_command(ws, 1, {"type": "config/entity_registry/list"})
        self.assertEqual(["row"], response["result"])
        self.assertEqual([{"type": "config/entity_registry/list", "id": 1}], ws.sent)


class TestMissingToken(unittest.IsolatedAsyncioTestCase):
    async def test_rest_and_websocket_calls_refuse_without_token(self) -> None:
        with patch.object(settings, "HA_TOKEN", ""):
            state = await ha_client.fetch_entity_state("light.a")
            registry = await ha_client.fetch_entity_registry()
            config = await ha_client.fetch_automation_config("automation.a")

        self.assertEqual({"ok": False, "error": "HA token missing", "data": None}, state)
        self.assertFalse(registry["ok"])
        self.assertEqual([], registry["data"])
        self.assertEqual("HA token missing", config["error"])


class TestResultShaping(unittest.IsolatedAsyncioTestCase):
    async def test_entity_not_found(self) -> None:
        fake = AsyncMock(return_value={"ok": False, "status_code": 404, "error": "not found", "data": None})
        with patch.object(ha_client, "_ha_rest_get", new=fake):
            result = await ha_client.fetch_entity_state("light.gone")
        self.assertEqual("entity not found: light.gone", result["error"])

    async def test_list_automations_rows(self) -> None:
        states = [
            {"entity_id": "automation.a", "state": "on", "attributes": {"friendly_name": "A", "last_triggered": None}},
            {"entity_id": "light.b", "state": "off", "attributes": {}},
            "garbage",
        ]
        fake = AsyncMock(return_value={"ok": True, "data": states})
        with patch.object(ha_client, "_ha_rest_get", new=fake):
            result = await ha_client.list_automations()
        self.assertEqual(
            [{"entity_id": "automation.a", "state": "on", "friendly_name": "A", "last_triggered": ""}],
            result["data"],
        )

    async def test_listing_reuses_given_states(self) -> None:
        fake = AsyncMock()
        states = [
            {"entity_id": "script.a", "state": "off", "attributes": {}},
            {"entity_id": "scene.b", "state": "scening", "attributes": {}},
        ]
        with patch.object(ha_client, "_ha_rest_get", new=fake):
            scripts = await ha_client.list_scripts(states=states)
            scenes = await ha_client.list_scenes(states=states)
        fake.assert_not_awaited()
        self.assertEqual(["script.a"], [r["entity_id"] for r in scripts["data"]])
        self.assertEqual(["scene.b"], [r["entity_id"] for r in scenes["data"]])

    async def test_automation_config_unwraps_config(self) -> None:
        fake = AsyncMock(return_value={"ok": True, "data": {"config": {"alias": "A", "triggers": []}}})
        with patch.object(ha_client, "_ha_ws_command", new=fake):
            result = await ha_client.fetch_automation_config("a")
        fake.assert_awaited_once_with(
            {"type": "automation/config", "entity_id": "automation.a"}, context="ha.automation.config"
        )
        self.assertEqual("A", result["data"]["alias"])

    async def test_history_returns_first_series(self) -> None:
        series = [{"state": "on", "last_changed": "2026-10-18T07:00:00+00:00"}]
        fake = AsyncMock(return_value={"ok": True, "data": [series, [{"state": "other"}]]})
        end = datetime(2026, 10, 18, 8, tzinfo=timezone.utc)
        with patch.object(ha_client, "_ha_rest_get", new=fake):
            result = await ha_client.fetch_entity_history("light.a", end - timedelta(hours=24), end)
        self.assertEqual(series, result["data"])
        self.assertEqual("light.a", fake.await_args.kwargs["params"]["filter_entity_id"])

    async def test_history_failure_has_empty_data(self) -> None:
        fake = AsyncMock(return_value={"ok": False, "error": "ha.history failed: boom", "data": None})
        end = datetime(2026, 10, 18, 8, tzinfo=timezone.utc)
        with patch.object(ha_client, "_ha_rest_get", new=fake):
            result = await ha_client.fetch_entity_history("light.a", end, end)
        self.assertFalse(result["ok"])
        self.assertEqual([], result["data"])


if __name__ == "__main__":
    unittest.main()
