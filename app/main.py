from time import perf_counter
from typing import Any

from fastapi import FastAPI, Request

from app.core import settings
from app.routers import analysis, logs
from app.services.log_service import log_http_request


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)
app.include_router(analysis.router)
app.include_router(logs.router)


@app.middleware("http")
async def record_http_request(request: Request, call_next: Any) -> Any:
    started = perf_counter()
    response = await call_next(request)
    log_http_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((perf_counter() - started) * 1000, 2),
        client_ip=request.client.host if request.client else None,
    )
    return response


@app.get("/health")
async def health() -> dict[str, Any]:
    return {
        "service": settings.APP_NAME,
        "status": "ok",
        "ha_base_url": settings.HA_BASE_URL,
        "ha_token_set": bool(settings.HA_TOKEN),
    }
