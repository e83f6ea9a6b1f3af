from typing import Any

from fastapi import APIRouter, Query

from ha_light_bridge.services.log_service import get_log_storage_meta, list_recent_logs

router = APIRouter(prefix="/v1/logs", tags=["system"])


@router.get("/recent")
async def get_recent_logs(
    limit: int = Query(default=200, ge=1, le=1000),
    event_type: str | None = Query(default=None),
    level: str | None = Query(default=None, description="info, warning or error"),
    source: str | None = Query(default=None, description="system or tool"),
) -> dict[str, Any]:
    logs = list_recent_logs(limit=limit, event_type=event_type, level=level, source=source)
    return {
        **get_log_storage_meta(),
        "logs": [x.model_dump(mode="json") for x in logs],
    }
