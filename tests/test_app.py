import unittest
from unittest.mock import patch

import httpx
from fastapi.testclient import TestClient

from hub_fakes import HA_TOKEN, FakeHub, make_config, ws_result

from ha_light_bridge import main as main_module
from ha_light_bridge.core.errors import ConfigError
from ha_light_bridge.main import create_app
from ha_light_bridge.services.ha_service import build_bridge_service


class TestBridgeApp(unittest.TestCase):
    def setUp(self) -> None:
        self.hub = FakeHub(
            {
                ("GET", "/api/states"): httpx.Response(
                    200,
                    json=[{"entity_id": "light.desk", "state": "off", "attributes": {"friendly_name": "Desk Lamp"}}],
                ),
                ("POST", "/api/services/light/turn_off"): httpx.Response(200, json=[]),
            }
        )
        self.hub.sessions["config/area_registry/list"] = ws_result([{"area_id": "study", "name": "Study"}])
        self.hub.sessions["config/device_registry/list"] = ws_result([])
        self.hub.sessions["config/entity_registry/list"] = ws_result([{"entity_id": "light.desk", "area_id": "study"}])
        config = make_config()
        self.bridge = build_bridge_service(config, self.hub.client(config))
        self.app = create_app(config, bridge=self.bridge)

    def test_health_and_tools(self) -> None:
        with TestClient(self.app) as client:
            health = client.get("/health").json()
            tools = client.get("/v1/tools").json()["tools"]

        self.assertEqual("ok", health["status"])
        self.assertEqual(4, len(tools))

    def test_tool_call_round_trip(self) -> None:
        with TestClient(self.app) as client:
            resp = client.post("/v1/tools/call", json={"tool_name": "get_all_states"})

        self.assertEqual(200, resp.status_code)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual("study", body["data"]["states"][0]["area"]["area_id"])

    def test_control_route(self) -> None:
        with TestClient(self.app) as client:
            resp = client.post("/v1/ha/control", json={"entity_id": "light.desk", "action": "off"}).json()

        self.assertEqual("Successfully turned light.desk off", resp["message"])
        self.assertEqual(["/api/services/light/turn_off"], self.hub.paths("POST"))

    def test_area_refresh_route(self) -> None:
        with TestClient(self.app) as client:
            body = client.post("/v1/ha/areas/refresh").json()

        self.assertTrue(body["refreshed"])
        self.assertEqual(1, body["entity_count"])
        self.assertEqual("ws:config/area_registry/list", body["sources"]["areas"])

    def test_config_hides_token(self) -> None:
        with TestClient(self.app) as client:
            resp = client.get("/v1/config")

        self.assertTrue(resp.json()["ha_token_set"])
        self.assertNotIn(HA_TOKEN, resp.text)


class TestMain(unittest.TestCase):
    def test_missing_config_exits_with_status_1(self) -> None:
        with (
            patch("sys.argv", ["ha-light-bridge"]),
            patch.object(main_module.settings, "load_bridge_config", side_effect=ConfigError("ha_token is empty")),
            patch.object(main_module.uvicorn, "run") as run,
        ):
            with self.assertRaises(SystemExit) as ctx:
                main_module.main()

        self.assertEqual(1, ctx.exception.code)
        run.assert_not_called()


if __name__ == "__main__":
    unittest.main()
