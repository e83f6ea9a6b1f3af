import json
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, TypeAdapter, ValidationError

from ha_light_bridge.core.errors import BridgeError, NotFoundError, ProtocolError, UserInputError
from ha_light_bridge.models.schemas import (
    BridgeConfig,
    ControlEntityArguments,
    ControlMultipleEntitiesArguments,
    EntityStateArguments,
    HAState,
    ToolCallRequest,
    ToolCallResponse,
    ToolDefinition,
)
from ha_light_bridge.services.area_cache import AreaCache
from ha_light_bridge.services.area_resolution import STATES_PATH, AreaResolver
from ha_light_bridge.services.control_service import BatchControlResult, ControlExecutor
from ha_light_bridge.services.entity_filter import filter_entities, filter_supported_domains
from ha_light_bridge.services.hub_client import HubClient
from ha_light_bridge.services.log_service import log_operation


_STATES = TypeAdapter(list[HAState])

TOOL_DEFINITIONS: list[ToolDefinition] = [
    ToolDefinition(
        tool_name="get_all_states",
        description="Get the state of all lights and switches",
    ),
    ToolDefinition(
        tool_name="get_entity_state",
        description="Get the state of a specific light or switch",
        arguments=EntityStateArguments.model_json_schema(),
    ),
    ToolDefinition(
        tool_name="control_entity",
        description="Turn a light or switch on or off",
        arguments=ControlEntityArguments.model_json_schema(),
    ),
    ToolDefinition(
        tool_name="control_multiple_entities",
        description=(
            "Control multiple lights or switches at once. "
            "Requires an array of objects with entity_id and action properties."
        ),
        arguments=ControlMultipleEntitiesArguments.model_json_schema(),
    ),
]


def _compact_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _validation_message(ex: ValidationError) -> str:
    first = ex.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "arguments"
    return f"{field}: {first.get('msg', 'invalid value')}"


class BridgeService:
    """Read and control operations over one hub, with area enrichment on reads."""

    def __init__(
        self,
        config: BridgeConfig,
        hub: HubClient,
        cache: AreaCache,
        executor: ControlExecutor,
    ) -> None:
        self.config = config
        self.hub = hub
        self.cache = cache
        self.executor = executor

    async def get_all_states(self, *, trace_id: str | None = None) -> list[HAState]:
        status, body = await self.hub.fetch_json("GET", STATES_PATH, context="states.all", trace_id=trace_id)
        if status != 200:
            raise ProtocolError(f"HA API returned status {status}")
        try:
            states = _STATES.validate_json(body)
        except ValidationError as ex:
            raise ProtocolError(f"unexpected states payload: {ex.error_count()} errors") from ex

        result = filter_entities(
            filter_supported_domains(states),
            self.config.entity_blacklist,
            self.config.entity_filter,
        )
        await self.cache.enrich(result)
        return result

    async def get_entity_state(self, entity_id: str, *, trace_id: str | None = None) -> HAState:
        normalized = entity_id.strip()
        if not normalized:
            raise UserInputError("entity_id is required")

        status, body = await self.hub.fetch_json(
            "GET",
            f"{STATES_PATH}/{quote(normalized, safe='')}",
            context="states.entity",
            trace_id=trace_id,
        )
        if status == 404:
            raise NotFoundError(normalized)
        if status != 200:
            raise ProtocolError(f"HA API returned status {status}")
        try:
            state = HAState.model_validate_json(body)
        except ValidationError as ex:
            raise ProtocolError(f"unexpected entity payload: {ex.error_count()} errors") from ex

        await self.cache.enrich([state])
        return state

    async def control_entity(
        self,
        entity_id: str,
        action: str,
        *,
        dry_run: bool = False,
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        return await self.executor.control_entity(entity_id, action, dry_run=dry_run, trace_id=trace_id)

    async def control_multiple_entities(
        self,
        items: list[Any],
        *,
        dry_run: bool = False,
        trace_id: str | None = None,
    ) -> BatchControlResult:
        return await self.executor.control_entities(items, dry_run=dry_run, trace_id=trace_id)

    def list_tools(self) -> list[ToolDefinition]:
        return list(TOOL_DEFINITIONS)

    async def execute_tool_call(self, req: ToolCallRequest) -> ToolCallResponse:
        """Run one tool; every failure comes back as ``success=False``, never raised."""
        trace_id = req.trace_id
        try:
            response = await self._dispatch(req)
        except BridgeError as ex:
            response = ToolCallResponse(
                success=False,
                message=self._failure_prefix(req.tool_name) + ex.message,
                trace_id=trace_id,
                data={"error": ex.to_error_detail()},
            )

        log_operation(
            event_type="tool_call",
            source="tool",
            action=req.tool_name,
            level="info" if response.success else "warning",
            trace_id=trace_id,
            success=response.success,
            detail={"arguments": req.arguments, "dry_run": req.dry_run, "message": response.message},
        )
        return response

    @staticmethod
    def _failure_prefix(tool_name: str) -> str:
        return {
            "get_all_states": "Failed to get states: ",
            "get_entity_state": "Failed to get entity state: ",
            "control_entity": "Failed to control entity: ",
        }.get(tool_name, "")

    @staticmethod
    def _parse_arguments(model: type[BaseModel], arguments: dict[str, Any]) -> Any:
        try:
            return model.model_validate(arguments)
        except ValidationError as ex:
            raise UserInputError(_validation_message(ex)) from ex

    async def _dispatch(self, req: ToolCallRequest) -> ToolCallResponse:
        trace_id = req.trace_id

        if req.tool_name == "get_all_states":
            states = await self.get_all_states(trace_id=trace_id)
            payload = [state.to_payload() for state in states]
            return ToolCallResponse(
                success=True,
                message=f"Found {len(states)} lights and switches:\n{_compact_json(payload)}",
                trace_id=trace_id,
                data={"count": len(states), "states": payload},
            )

        if req.tool_name == "get_entity_state":
            args = self._parse_arguments(EntityStateArguments, req.arguments)
            state = await self.get_entity_state(args.entity_id, trace_id=trace_id)
            payload = state.to_payload()
            return ToolCallResponse(
                success=True,
                message=f"Entity {state.entity_id} is {state.state}:\n{_compact_json(payload)}",
                trace_id=trace_id,
                data={"state": payload},
            )

        if req.tool_name == "control_entity":
            args = self._parse_arguments(ControlEntityArguments, req.arguments)
            result = await self.control_entity(args.entity_id, args.action, dry_run=req.dry_run, trace_id=trace_id)
            return ToolCallResponse(
                success=True,
                message=f"Successfully turned {args.entity_id} {args.action}",
                trace_id=trace_id,
                data=result,
            )

        if req.tool_name == "control_multiple_entities":
            if "entities" not in req.arguments:
                raise UserInputError("entities parameter is required")
            if not isinstance(req.arguments["entities"], list):
                raise UserInputError("entities must be an array")
            args = self._parse_arguments(ControlMultipleEntitiesArguments, req.arguments)
            batch = await self.control_multiple_entities(args.entities, dry_run=req.dry_run, trace_id=trace_id)
            payload = batch.to_payload()
            total = len(args.entities)
            # Per-item failures live in data.errors; the batch itself ran.
            return ToolCallResponse(
                success=True,
                message=(
                    f"Processed {total} entities: {batch.success_count} successful, "
                    f"{batch.failure_count} failed\n{_compact_json(payload)}"
                ),
                trace_id=trace_id,
                data=payload,
            )

        raise UserInputError(f"unknown tool: {req.tool_name}")


def build_bridge_service(config: BridgeConfig, hub: HubClient | None = None) -> BridgeService:
    hub = hub or HubClient(config)
    return BridgeService(
        config=config,
        hub=hub,
        cache=AreaCache(AreaResolver(hub)),
        executor=ControlExecutor(hub),
    )
