from typing import Any

from fastapi import APIRouter, Depends

from ha_light_bridge.models.schemas import ToolCallRequest, ToolCallResponse
from ha_light_bridge.routers.deps import get_bridge_service
from ha_light_bridge.services.ha_service import BridgeService

router = APIRouter(prefix="/v1", tags=["tool-call"])


@router.get("/tools")
async def list_tools(bridge: BridgeService = Depends(get_bridge_service)) -> dict[str, Any]:
    return {"tools": [tool.model_dump(mode="json") for tool in bridge.list_tools()]}


@router.post("/tools/call", response_model=ToolCallResponse)
async def call_tool(req: ToolCallRequest, bridge: BridgeService = Depends(get_bridge_service)) -> ToolCallResponse:
    return await bridge.execute_tool_call(req)
