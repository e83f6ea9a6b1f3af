from fastapi import APIRouter, Depends

from ha_light_bridge.core import settings
from ha_light_bridge.models.schemas import BridgeConfigView
from ha_light_bridge.routers.deps import get_bridge_service
from ha_light_bridge.services.ha_service import BridgeService

router = APIRouter(prefix="/v1/config", tags=["config"])


@router.get("", response_model=BridgeConfigView)
async def get_config(bridge: BridgeService = Depends(get_bridge_service)) -> BridgeConfigView:
    config = bridge.config
    return BridgeConfigView(
        ha_url=config.ha_url,
        ha_token_set=bool(config.ha_token),
        ha_token_preview=config.masked_token(),
        entity_filter=config.entity_filter,
        entity_blacklist=config.entity_blacklist,
        source=config.source,
        ha_timeout_sec=settings.HA_TIMEOUT_SEC,
        ha_ws_timeout_sec=settings.HA_WS_TIMEOUT_SEC,
    )
