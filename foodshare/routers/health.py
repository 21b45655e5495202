"""
健康检查路由
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ..dependencies import ServiceContainer, get_services

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(services: ServiceContainer = Depends(get_services)):
    """健康检查端点"""
    settings = services.settings
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "version": settings.app_version,
        "environment": settings.environment.value,
    }
