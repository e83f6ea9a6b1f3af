from typing import Any

from fastapi import APIRouter, Depends, Query

from ha_light_bridge.models.schemas import BatchControlRequest, ControlRequest, ToolCallRequest, ToolCallResponse
from ha_light_bridge.routers.deps import get_bridge_service
from ha_light_bridge.services.ha_service import BridgeService

router = APIRouter(prefix="/v1/ha", tags=["ha"])


@router.get("/states", response_model=ToolCallResponse)
async def ha_states(
    trace_id: str | None = Query(default=None),
    bridge: BridgeService = Depends(get_bridge_service),
) -> ToolCallResponse:
    return await bridge.execute_tool_call(ToolCallRequest(tool_name="get_all_states", trace_id=trace_id))


@router.get("/states/{entity_id}", response_model=ToolCallResponse)
async def ha_entity_state(
    entity_id: str,
    trace_id: str | None = Query(default=None),
    bridge: BridgeService = Depends(get_bridge_service),
) -> ToolCallResponse:
    return await bridge.execute_tool_call(
        ToolCallRequest(tool_name="get_entity_state", arguments={"entity_id": entity_id}, trace_id=trace_id)
    )


@router.post("/control", response_model=ToolCallResponse)
async def ha_control(req: ControlRequest, bridge: BridgeService = Depends(get_bridge_service)) -> ToolCallResponse:
    return await bridge.execute_tool_call(
        ToolCallRequest(
            tool_name="control_entity",
            arguments={"entity_id": req.entity_id, "action": req.action},
            trace_id=req.trace_id,
            dry_run=req.dry_run,
        )
    )


@router.post("/control/batch", response_model=ToolCallResponse)
async def ha_control_batch(
    req: BatchControlRequest,
    bridge: BridgeService = Depends(get_bridge_service),
) -> ToolCallResponse:
    return await bridge.execute_tool_call(
        ToolCallRequest(
            tool_name="control_multiple_entities",
            arguments={"entities": req.entities},
            trace_id=req.trace_id,
            dry_run=req.dry_run,
        )
    )


@router.get("/areas")
async def ha_areas(bridge: BridgeService = Depends(get_bridge_service)) -> dict[str, Any]:
    return await bridge.cache.snapshot()


@router.post("/areas/refresh")
async def ha_areas_refresh(bridge: BridgeService = Depends(get_bridge_service)) -> dict[str, Any]:
    bridge.cache.invalidate()
    refreshed = await bridge.cache.ensure_fresh()
    return {"refreshed": refreshed, **(await bridge.cache.snapshot())}
