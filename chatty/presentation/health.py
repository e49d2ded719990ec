from typing import Final

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

health_router: Final = APIRouter(tags=["health"])


@health_router.get("/health")
async def health(request: Request) -> JSONResponse:
    """Report persistence and realtime bridge readiness."""
    connector = request.app.state.connector
    bridge = request.app.state.bridge

    database = connector.health()
    ready = connector.is_connected and bridge.is_ready
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ok" if ready else "degraded",
            "database": database,
            "realtime": {"state": bridge.state.value},
        },
    )
