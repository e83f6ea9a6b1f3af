import argparse
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from ha_light_bridge.core import settings
from ha_light_bridge.core.errors import ConfigError
from ha_light_bridge.models.schemas import BridgeConfig
from ha_light_bridge.routers import config as config_router
from ha_light_bridge.routers import ha as ha_router
from ha_light_bridge.routers import log as log_router
from ha_light_bridge.routers import tool_call as tool_call_router
from ha_light_bridge.services.ha_service import BridgeService, build_bridge_service
from ha_light_bridge.services.log_service import log_operation, start_log_worker, stop_log_worker


def create_app(config: BridgeConfig, bridge: BridgeService | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        start_log_worker()
        service = bridge or build_bridge_service(config)
        app.state.bridge = service
        log_operation(
            event_type="lifecycle",
            action="bridge.start",
            success=True,
            detail={
                "ha_url": config.ha_url,
                "config_source": config.source,
                "entity_filter": config.entity_filter,
                "entity_blacklist": config.entity_blacklist,
                "tools": [tool.tool_name for tool in service.list_tools()],
            },
        )
        try:
            yield
        finally:
            await service.hub.aclose()
            log_operation(event_type="lifecycle", action="bridge.stop", success=True)
            stop_log_worker()

    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "service": settings.APP_NAME,
            "status": "ok",
            "ha_url": config.ha_url,
            "area_cache_fresh": app.state.bridge.cache.is_fresh(),
        }

    app.include_router(tool_call_router.router)
    app.include_router(ha_router.router)
    app.include_router(log_router.router)
    app.include_router(config_router.router)
    return app


def main() -> None:
    parser = argparse.ArgumentParser(prog="ha-light-bridge", description="Run the Home Assistant light/switch bridge")
    parser.add_argument("--host", default=settings.HA_BRIDGE_HOST)
    parser.add_argument("--port", type=int, default=settings.HA_BRIDGE_PORT)
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args()

    try:
        config = settings.load_bridge_config()
    except ConfigError as ex:
        print(f"Error loading configuration: {ex.message}", file=sys.stderr)
        print(
            "Please set HA_TOKEN and HA_URL environment variables or create a config.json file",
            file=sys.stderr,
        )
        sys.exit(1)

    uvicorn.run(create_app(config), host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
