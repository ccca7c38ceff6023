"""
Health endpoints.

    GET /health           — Liveness: status, uptime, version, environment
    GET /health/detailed  — Adds database connectivity and memory usage
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from backend.app.api.schemas import DetailedHealthResponse, HealthResponse
from backend.app.core.config import Settings
from backend.app.core.database import ping_database
from backend.app.core.health import DatabaseProbe, basic_health, detailed_health

router = APIRouter(prefix="/health", tags=["Health"])


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database_probe(config: Settings = Depends(get_app_settings)) -> DatabaseProbe:
    """Overridable in tests via ``app.dependency_overrides``."""
    async def probe() -> float:
        return await ping_database(config)
    return probe


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check endpoint",
    description="Basic health check to verify the service is running",
)
async def health(config: Settings = Depends(get_app_settings)):
    return basic_health(config).to_dict()


@router.get(
    "/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health check",
    description="Extended health check including database connectivity",
)
async def health_detailed(
    config: Settings = Depends(get_app_settings),
    probe: DatabaseProbe = Depends(get_database_probe),
):
    report = await detailed_health(config, probe)
    return report.to_dict()
