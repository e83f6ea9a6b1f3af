"""Registry resolution: socket API, then REST candidates, then state heuristics.

Each source is a *tier*: a coroutine function with no arguments returning a
``TierResult``. ``resolve_registry`` walks the tiers in order and stops at the
first ``ok``. ``empty`` and ``error`` both move on; they differ only in what
gets logged and reported when everything is exhausted.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

from pydantic import TypeAdapter, ValidationError

from ha_light_bridge.core.errors import BridgeError, ProtocolError, RegistryUnavailableError
from ha_light_bridge.models.schemas import HAArea, HADevice, HAEntityRegistration, HAState
from ha_light_bridge.services.area_extraction import extract_areas, extract_entity_registrations
from ha_light_bridge.services.entity_filter import filter_supported_domains
from ha_light_bridge.services.hub_client import HubClient
from ha_light_bridge.services.log_service import log_operation


T = TypeVar("T")
TierStatus = Literal["ok", "empty", "error"]

AREA_REGISTRY_WS_TYPE = "config/area_registry/list"
DEVICE_REGISTRY_WS_TYPE = "config/device_registry/list"
ENTITY_REGISTRY_WS_TYPE = "config/entity_registry/list"

AREA_REGISTRY_REST_PATHS = ("/api/config/area_registry", "/api/areas")
DEVICE_REGISTRY_REST_PATH = "/api/config/device_registry"
ENTITY_REGISTRY_REST_PATH = "/api/config/entity_registry"
STATES_PATH = "/api/states"

_AREAS = TypeAdapter(list[HAArea])
_DEVICES = TypeAdapter(list[HADevice])
_ENTITIES = TypeAdapter(list[HAEntityRegistration])
_STATES = TypeAdapter(list[HAState])


@dataclass
class TierResult(Generic[T]):
    status: TierStatus
    source: str
    items: list[T] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def ok(cls, source: str, items: list[T]) -> TierResult[T]:
        return cls(status="ok", source=source, items=items)

    @classmethod
    def empty(cls, source: str, reason: str) -> TierResult[T]:
        return cls(status="empty", source=source, error=reason)

    @classmethod
    def failed(cls, source: str, reason: str) -> TierResult[T]:
        return cls(status="error", source=source, error=reason)


@dataclass
class RegistryResolution(Generic[T]):
    registry: str
    source: str
    items: list[T]


Tier = Callable[[], Awaitable[TierResult[T]]]


async def resolve_registry(registry: str, tiers: Sequence[Tier[T]]) -> RegistryResolution[T]:
    attempts: list[str] = []
    for tier in tiers:
        result = await tier()
        log_operation(
            event_type="area_resolution",
            action=f"registry.{registry}",
            level="info" if result.status == "ok" else "warning",
            path=result.source,
            success=result.status == "ok",
            detail={
                "registry": registry,
                "status": result.status,
                "count": len(result.items),
                "message": result.error,
            },
        )
        if result.status == "ok":
            return RegistryResolution(registry=registry, source=result.source, items=result.items)
        attempts.append(f"{result.source}: {result.error or result.status}")
    raise RegistryUnavailableError(registry, attempts)


def _decode(adapter: TypeAdapter[list[Any]], raw: Any) -> list[Any]:
    if isinstance(raw, (bytes, str)):
        return adapter.validate_json(raw)
    return adapter.validate_python(raw)


class AreaResolver:
    """Builds the tier chains for the three registries on top of one HubClient."""

    def __init__(self, hub: HubClient) -> None:
        self.hub = hub

    def socket_tier(
        self,
        request_type: str,
        adapter: TypeAdapter[list[T]],
        *,
        require_items: bool,
    ) -> Tier[T]:
        async def run() -> TierResult[T]:
            source = f"ws:{request_type}"
            try:
                raw = await self.hub.socket_request(request_type)
                items = _decode(adapter, raw)
            except BridgeError as ex:
                return TierResult.failed(source, ex.message)
            except ValidationError as ex:
                return TierResult.failed(source, f"unexpected result shape: {ex.error_count()} errors")
            if require_items and not items:
                return TierResult.empty(source, "no items")
            return TierResult.ok(source, items)

        return run

    def rest_tier(
        self,
        path: str,
        adapter: TypeAdapter[list[T]],
        *,
        empty_on_status: bool = False,
    ) -> Tier[T]:
        async def run() -> TierResult[T]:
            source = f"rest:{path}"
            try:
                status, body = await self.hub.fetch_json("GET", path, context="area_resolution")
            except BridgeError as ex:
                return TierResult.failed(source, ex.message)
            if status != 200:
                if empty_on_status:
                    # Hubs without this registry still get area enrichment.
                    return TierResult.ok(source, [])
                return TierResult.failed(source, f"status {status}")
            try:
                return TierResult.ok(source, _decode(adapter, body))
            except ValidationError as ex:
                return TierResult.failed(source, f"undecodable body: {ex.error_count()} errors")

        return run

    def heuristic_tier(self, extract: Callable[[list[HAState]], list[T]]) -> Tier[T]:
        async def run() -> TierResult[T]:
            source = f"heuristic:{STATES_PATH}"
            try:
                states = await self.fetch_supported_states()
            except BridgeError as ex:
                return TierResult.failed(source, ex.message)
            return TierResult.ok(source, extract(states))

        return run

    async def fetch_supported_states(self) -> list[HAState]:
        status, body = await self.hub.fetch_json("GET", STATES_PATH, context="area_resolution.states")
        if status != 200:
            raise ProtocolError(f"HA API returned status {status} for states")
        try:
            states = _decode(_STATES, body)
        except ValidationError as ex:
            raise ProtocolError(f"unexpected states payload: {ex.error_count()} errors") from ex
        return filter_supported_domains(states)

    async def fetch_areas(self) -> RegistryResolution[HAArea]:
        tiers: list[Tier[HAArea]] = [self.socket_tier(AREA_REGISTRY_WS_TYPE, _AREAS, require_items=True)]
        tiers.extend(self.rest_tier(path, _AREAS) for path in AREA_REGISTRY_REST_PATHS)
        tiers.append(self.heuristic_tier(extract_areas))
        return await resolve_registry("areas", tiers)

    async def fetch_devices(self) -> RegistryResolution[HADevice]:
        return await resolve_registry(
            "devices",
            [
                self.socket_tier(DEVICE_REGISTRY_WS_TYPE, _DEVICES, require_items=False),
                self.rest_tier(DEVICE_REGISTRY_REST_PATH, _DEVICES, empty_on_status=True),
            ],
        )

    async def fetch_entity_registrations(self) -> RegistryResolution[HAEntityRegistration]:
        return await resolve_registry(
            "entities",
            [
                self.socket_tier(ENTITY_REGISTRY_WS_TYPE, _ENTITIES, require_items=False),
                self.rest_tier(ENTITY_REGISTRY_REST_PATH, _ENTITIES),
                self.heuristic_tier(extract_entity_registrations),
            ],
        )
