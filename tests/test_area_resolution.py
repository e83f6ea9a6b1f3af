from __future__ import annotations

import unittest

import httpx

from hub_fakes import FakeHub, ws_result

from ha_light_bridge.core.errors import RegistryUnavailableError
from ha_light_bridge.models.schemas import HAArea
from ha_light_bridge.services.area_resolution import AreaResolver, TierResult, resolve_registry


STATES = [
    {"entity_id": "light.living_room_lamp", "state": "on", "attributes": {"friendly_name": "Living Room Lamp 1"}},
    {"entity_id": "switch.sonoff_1", "state": "off", "attributes": {"friendly_name": "Sonoff Switch 1"}},
    {"entity_id": "sensor.kitchen_temp", "state": "21", "attributes": {"friendly_name": "Kitchen Temperature"}},
    {"entity_id": "switch.porch", "state": "off", "attributes": {"area": "Front Porch"}},
]


class TestResolveRegistryDriver(unittest.IsolatedAsyncioTestCase):
    async def test_stops_at_first_ok(self) -> None:
        calls: list[str] = []

        def tier(name: str, result: TierResult[int]):
            async def run() -> TierResult[int]:
                calls.append(name)
                return result

            return run

        resolution = await resolve_registry(
            "numbers",
            [
                tier("a", TierResult.failed("a", "boom")),
                tier("b", TierResult.empty("b", "nothing")),
                tier("c", TierResult.ok("c", [1, 2])),
                tier("d", TierResult.ok("d", [3])),
            ],
        )
        self.assertEqual(["a", "b", "c"], calls)
        self.assertEqual([1, 2], resolution.items)
        self.assertEqual("c", resolution.source)

    async def test_exhausted_raises_with_attempts(self) -> None:
        async def broken() -> TierResult[int]:
            return TierResult.failed("only", "down")

        with self.assertRaises(RegistryUnavailableError) as ctx:
            await resolve_registry("numbers", [broken])
        self.assertEqual("numbers", ctx.exception.registry)
        self.assertEqual(["only: down"], ctx.exception.attempts)


class TestAreasResolution(unittest.IsolatedAsyncioTestCase):
    async def test_socket_areas_win(self) -> None:
        hub = FakeHub()
        hub.sessions["config/area_registry/list"] = ws_result(
            [{"area_id": "kitchen", "name": "Kitchen", "picture": None, "aliases": ["cooking"], "floor_id": None}]
        )
        resolution = await AreaResolver(hub.client()).fetch_areas()
        self.assertEqual([HAArea(area_id="kitchen", name="Kitchen", aliases=["cooking"])], resolution.items)
        self.assertEqual("ws:config/area_registry/list", resolution.source)
        self.assertEqual([], hub.paths())

    async def test_empty_socket_areas_fall_through_to_rest(self) -> None:
        hub = FakeHub({("GET", "/api/config/area_registry"): httpx.Response(200, json=[{"area_id": "x", "name": "X"}])})
        hub.sessions["config/area_registry/list"] = ws_result([])
        resolution = await AreaResolver(hub.client()).fetch_areas()
        self.assertEqual(["x"], [a.area_id for a in resolution.items])
        self.assertEqual(["/api/config/area_registry"], hub.paths())

    async def test_second_rest_candidate_after_403(self) -> None:
        hub = FakeHub(
            {
                ("GET", "/api/config/area_registry"): httpx.Response(403, json={"message": "forbidden"}),
                ("GET", "/api/areas"): httpx.Response(200, json=[{"area_id": "a1", "name": "Kitchen"}]),
            }
        )
        hub.sessions["*"] = ConnectionRefusedError("no socket")

        resolution = await AreaResolver(hub.client()).fetch_areas()

        self.assertEqual([HAArea(area_id="a1", name="Kitchen")], resolution.items)
        self.assertEqual("rest:/api/areas", resolution.source)
        self.assertEqual(["/api/config/area_registry", "/api/areas"], hub.paths())

    async def test_undecodable_rest_body_advances(self) -> None:
        hub = FakeHub(
            {
                ("GET", "/api/config/area_registry"): httpx.Response(200, json={"not": "a list"}),
                ("GET", "/api/areas"): httpx.Response(200, text="<html>"),
                ("GET", "/api/states"): httpx.Response(200, json=STATES),
            }
        )
        resolution = await AreaResolver(hub.client()).fetch_areas()
        self.assertEqual("heuristic:/api/states", resolution.source)
        self.assertEqual(["living_room", "front_porch"], [a.area_id for a in resolution.items])

    async def test_everything_down_raises(self) -> None:
        hub = FakeHub({("GET", "/api/states"): httpx.Response(500)})
        with self.assertRaises(RegistryUnavailableError):
            await AreaResolver(hub.client()).fetch_areas()


class TestDevicesResolution(unittest.IsolatedAsyncioTestCase):
    async def test_empty_socket_devices_are_accepted(self) -> None:
        hub = FakeHub()
        hub.sessions["config/device_registry/list"] = ws_result([])
        resolution = await AreaResolver(hub.client()).fetch_devices()
        self.assertEqual([], resolution.items)
        self.assertEqual("ws:config/device_registry/list", resolution.source)
        self.assertEqual([], hub.paths())

    async def test_rest_non_200_means_no_devices(self) -> None:
        hub = FakeHub({("GET", "/api/config/device_registry"): httpx.Response(404)})
        resolution = await AreaResolver(hub.client()).fetch_devices()
        self.assertEqual([], resolution.items)
        self.assertEqual("rest:/api/config/device_registry", resolution.source)

    async def test_rest_devices_decode(self) -> None:
        hub = FakeHub(
            {
                ("GET", "/api/config/device_registry"): httpx.Response(
                    200, json=[{"id": "dev1", "area_id": "kitchen", "name": "Hue bridge"}, {"id": "dev2", "area_id": None}]
                )
            }
        )
        resolution = await AreaResolver(hub.client()).fetch_devices()
        self.assertEqual(["dev1", "dev2"], [d.id for d in resolution.items])
        self.assertIsNone(resolution.items[1].area_id)

    async def test_devices_have_no_heuristic(self) -> None:
        hub = FakeHub({("GET", "/api/config/device_registry"): httpx.ConnectError("down")})
        with self.assertRaises(RegistryUnavailableError):
            await AreaResolver(hub.client()).fetch_devices()
        self.assertNotIn("/api/states", hub.paths())


class TestEntityRegistryResolution(unittest.IsolatedAsyncioTestCase):
    async def test_socket_entities(self) -> None:
        hub = FakeHub()
        hub.sessions["config/entity_registry/list"] = ws_result(
            [{"entity_id": "light.a", "device_id": "dev1", "area_id": None, "platform": "hue"}]
        )
        resolution = await AreaResolver(hub.client()).fetch_entity_registrations()
        self.assertEqual("dev1", resolution.items[0].device_id)

    async def test_rest_non_200_falls_back_to_heuristic(self) -> None:
        hub = FakeHub(
            {
                ("GET", "/api/config/entity_registry"): httpx.Response(404),
                ("GET", "/api/states"): httpx.Response(200, json=STATES),
            }
        )
        resolution = await AreaResolver(hub.client()).fetch_entity_registrations()
        by_id = {r.entity_id: r.area_id for r in resolution.items}
        self.assertEqual(
            {"light.living_room_lamp": "living_room", "switch.sonoff_1": None, "switch.porch": "front_porch"},
            by_id,
        )
        self.assertEqual(["/api/config/entity_registry", "/api/states"], hub.paths())


if __name__ == "__main__":
    unittest.main()
