import asyncio
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from ha_light_bridge.core.errors import BridgeError, EntityControlError, UserInputError
from ha_light_bridge.models.schemas import SUPPORTED_DOMAINS
from ha_light_bridge.services.hub_client import HubClient
from ha_light_bridge.services.log_service import log_operation


BATCH_PAUSE_SEC = 0.05

ACTION_SERVICES = {
    "on": "turn_on",
    "turn_on": "turn_on",
    "off": "turn_off",
    "turn_off": "turn_off",
}


def resolve_service_call(entity_id: str, action: str) -> tuple[str, str]:
    domain, sep, _ = entity_id.partition(".")
    if not sep or domain not in SUPPORTED_DOMAINS:
        raise UserInputError(f"unsupported entity type for {entity_id}")

    service = ACTION_SERVICES.get(action)
    if service is None:
        raise UserInputError(f"unsupported action: {action}")
    return domain, service


@dataclass
class BatchControlResult:
    results: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for row in self.results if row.get("success"))

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"results": self.results}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class ControlExecutor:
    def __init__(self, hub: HubClient, *, batch_pause_sec: float = BATCH_PAUSE_SEC) -> None:
        self.hub = hub
        self.batch_pause_sec = batch_pause_sec

    async def control_entity(
        self,
        entity_id: str,
        action: str,
        *,
        dry_run: bool = False,
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        domain, service = resolve_service_call(entity_id, action)
        path = f"/api/services/{domain}/{service}"
        service_data = {"entity_id": entity_id}

        if dry_run:
            log_operation(
                event_type="ha_call",
                action="ha.call.dry_run",
                trace_id=trace_id,
                success=True,
                detail={"entity_id": entity_id, "domain": domain, "service": service},
            )
            return {"entity_id": entity_id, "action": action, "domain": domain, "service": service, "dry_run": True}

        started = perf_counter()
        status_code: int | None = None
        try:
            status_code, _ = await self.hub.fetch_json("POST", path, service_data, context="control", trace_id=trace_id)
        except BridgeError as ex:
            reason = ex.message
        else:
            reason = None if status_code == 200 else f"HA API returned status {status_code}"
        duration_ms = round((perf_counter() - started) * 1000, 2)

        log_operation(
            event_type="ha_call",
            action="ha.call",
            level="info" if reason is None else "warning",
            method="POST",
            path=path,
            status_code=status_code,
            duration_ms=duration_ms,
            trace_id=trace_id,
            success=reason is None,
            detail={"entity_id": entity_id, "action": action, "message": reason},
        )
        if reason is not None:
            raise EntityControlError(
                entity_id=entity_id,
                action=action,
                duration_ms=duration_ms,
                status_code=status_code,
                reason=reason,
            )
        return {
            "entity_id": entity_id,
            "action": action,
            "domain": domain,
            "service": service,
            "duration_ms": duration_ms,
        }

    async def control_entities(
        self,
        items: list[Any],
        *,
        dry_run: bool = False,
        trace_id: str | None = None,
    ) -> BatchControlResult:
        """Control entities one at a time with a short pause between hub calls."""
        batch = BatchControlResult()
        for index, item in enumerate(items):
            row, error = await self._control_item(index, item, dry_run=dry_run, trace_id=trace_id)
            batch.results.append(row)
            if error is not None:
                batch.errors.append(error)
            if index < len(items) - 1:
                await asyncio.sleep(self.batch_pause_sec)

        log_operation(
            event_type="ha_call",
            action="ha.call.batch",
            trace_id=trace_id,
            success=not batch.errors,
            detail={
                "total": len(items),
                "success_count": batch.success_count,
                "failure_count": batch.failure_count,
            },
        )
        return batch

    async def _control_item(
        self,
        index: int,
        item: Any,
        *,
        dry_run: bool,
        trace_id: str | None,
    ) -> tuple[dict[str, Any], str | None]:
        if not isinstance(item, dict):
            message = f"Entity {index}: must be an object with entity_id and action"
            return {"index": index, "success": False, "error": message}, message

        entity_id = item.get("entity_id")
        if not isinstance(entity_id, str) or not entity_id:
            message = f"Entity {index}: entity_id is required and must be a string"
            return {"index": index, "entity_id": "", "success": False, "error": message}, message

        action = item.get("action")
        if not isinstance(action, str) or not action:
            message = f"Entity {entity_id}: action is required and must be a string"
            return {"index": index, "entity_id": entity_id, "success": False, "error": message}, message

        row: dict[str, Any] = {"index": index, "entity_id": entity_id, "action": action}
        try:
            await self.control_entity(entity_id, action, dry_run=dry_run, trace_id=trace_id)
        except BridgeError as ex:
            row.update({"success": False, "error": ex.message})
            return row, f"Entity {entity_id}: {ex.message}"
        row["success"] = True
        return row, None
