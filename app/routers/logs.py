from typing import Any

from fastapi import APIRouter, Query

from app.services.log_service import list_recent_logs

router = APIRouter(prefix="/v1/logs", tags=["logs"])


@router.get("/recent")
async def get_recent_logs(
    limit: int = Query(default=200, ge=1, le=1000),
    event_type: str | None = Query(default=None, description="e.g. entity_analysis, ha_request, http_request"),
    trace_id: str | None = Query(default=None, description="Only entries of one traced analysis request"),
) -> dict[str, Any]:
    logs = list_recent_logs(limit=limit, event_type=event_type, trace_id=trace_id)
    return {"count": len(logs), "logs": [x.model_dump(mode="json") for x in logs]}
