"""Liveness endpoint for load balancers and uptime checks."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core import check_db_connection, settings, utcnow

router = APIRouter(tags=["health"])


class HealthData(BaseModel):
    status: str
    version: str
    database: str
    timestamp: datetime


@router.get(
    "/health",
    responses={
        status.HTTP_200_OK: {"description": "API and database are reachable"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Database is unreachable"},
    },
)
async def health_check() -> JSONResponse:
    """Report whether the API can reach its database.

    Uses the response envelope like every other route; 503 tells the
    orchestrator to stop routing traffic here.
    """
    db_healthy = await check_db_connection()
    data = HealthData(
        status="healthy" if db_healthy else "unhealthy",
        version=settings.app_version,
        database="connected" if db_healthy else "disconnected",
        timestamp=utcnow(),
    )
    body: dict[str, Any] = {
        "success": db_healthy,
        "data": data.model_dump(mode="json"),
        "message": (
            f"{settings.app_name} is healthy" if db_healthy else "Database connection unavailable"
        ),
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK if db_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body,
    )
