import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from ha_light_bridge.core.rwlock import AsyncReadWriteLock
from ha_light_bridge.models.schemas import HAArea, HADevice, HAEntityRegistration, HAState
from ha_light_bridge.services.area_resolution import AreaResolver, RegistryResolution
from ha_light_bridge.services.log_service import log_operation, log_warning


AREA_CACHE_STALENESS_SEC = 300.0


class AreaCache:
    """Entity to area index joined from the area, device and entity registries.

    Refreshes run under the exclusive side of a reader/writer lock for their
    whole duration, network calls included; lookups take the shared side. The
    three maps are swapped together at the end of a refresh.
    """

    def __init__(
        self,
        resolver: AreaResolver,
        *,
        staleness_sec: float = AREA_CACHE_STALENESS_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.resolver = resolver
        self.staleness_sec = staleness_sec
        self._clock = clock
        self.lock = AsyncReadWriteLock()
        self._areas: dict[str, HAArea] = {}
        self._device_areas: dict[str, str] = {}
        self._entity_areas: dict[str, str] = {}
        self._sources: dict[str, str | None] = {"areas": None, "devices": None, "entities": None}
        self._last_refresh: float | None = None

    def is_fresh(self) -> bool:
        if self._last_refresh is None:
            return False
        return (self._clock() - self._last_refresh) < self.staleness_sec

    def invalidate(self) -> None:
        self._last_refresh = None

    async def ensure_fresh(self) -> bool:
        """Refresh when stale. Returns True when this call did the refresh."""
        if self.is_fresh():
            return False
        async with self.lock.write():
            if self.is_fresh():
                return False
            await self._refresh_locked()
            return True

    async def _fetch_or_empty(
        self,
        registry: str,
        fetch: Callable[[], Awaitable[RegistryResolution[Any]]],
    ) -> tuple[list[Any], str | None]:
        try:
            resolution = await fetch()
        except Exception as ex:
            log_warning(
                event_type="area_cache",
                action=f"area_cache.{registry}",
                message=f"could not update {registry} cache: {ex}",
                registry=registry,
            )
            return [], None
        return resolution.items, resolution.source

    async def _refresh_locked(self) -> None:
        started = time.perf_counter()
        areas, area_source = await self._fetch_or_empty("areas", self.resolver.fetch_areas)
        devices, device_source = await self._fetch_or_empty("devices", self.resolver.fetch_devices)
        entities, entity_source = await self._fetch_or_empty("entities", self.resolver.fetch_entity_registrations)

        device_areas = build_device_area_map(devices)
        self._areas = {area.area_id: area for area in areas}
        self._device_areas = device_areas
        self._entity_areas = build_entity_area_map(entities, device_areas)
        self._sources = {"areas": area_source, "devices": device_source, "entities": entity_source}
        self._last_refresh = self._clock()

        log_operation(
            event_type="area_cache",
            action="area_cache.refresh",
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            success=True,
            detail={
                "areas": len(self._areas),
                "devices": len(self._device_areas),
                "entities": len(self._entity_areas),
                "sources": dict(self._sources),
            },
        )

    def _lookup_unlocked(self, entity_id: str) -> HAArea | None:
        area_id = self._entity_areas.get(entity_id)
        if area_id is None:
            return None
        return self._areas.get(area_id)

    async def lookup_area(self, entity_id: str) -> HAArea | None:
        async with self.lock.read():
            return self._lookup_unlocked(entity_id)

    async def enrich(self, states: list[HAState]) -> int:
        """Attach areas to ``states`` in place; returns how many were enriched."""
        await self.ensure_fresh()

        enriched = 0
        async with self.lock.read():
            if not self._areas and not self._entity_areas:
                log_operation(
                    event_type="area_cache",
                    action="area_cache.enrich",
                    detail={"message": "no area information available", "total": len(states)},
                )
                return 0
            for state in states:
                area = self._lookup_unlocked(state.entity_id)
                if area is not None:
                    state.area = area
                    enriched += 1

        log_operation(
            event_type="area_cache",
            action="area_cache.enrich",
            success=True,
            detail={"enriched": enriched, "total": len(states)},
        )
        return enriched

    async def snapshot(self) -> dict[str, Any]:
        async with self.lock.read():
            age = None if self._last_refresh is None else round(self._clock() - self._last_refresh, 3)
            return {
                "fresh": self.is_fresh(),
                "age_sec": age,
                "staleness_sec": self.staleness_sec,
                "area_count": len(self._areas),
                "device_count": len(self._device_areas),
                "entity_count": len(self._entity_areas),
                "sources": dict(self._sources),
                "areas": [area.model_dump(mode="json") for area in self._areas.values()],
            }


def build_device_area_map(devices: Iterable[HADevice]) -> dict[str, str]:
    return {device.id: device.area_id for device in devices if device.area_id}


def build_entity_area_map(
    registrations: Iterable[HAEntityRegistration],
    device_areas: dict[str, str],
) -> dict[str, str]:
    entity_areas: dict[str, str] = {}
    for registration in registrations:
        if registration.area_id:
            entity_areas[registration.entity_id] = registration.area_id
        elif registration.device_id and registration.device_id in device_areas:
            entity_areas[registration.entity_id] = device_areas[registration.device_id]
    return entity_areas
