from fastapi import Request

from ha_light_bridge.services.ha_service import BridgeService


def get_bridge_service(request: Request) -> BridgeService:
    return request.app.state.bridge
