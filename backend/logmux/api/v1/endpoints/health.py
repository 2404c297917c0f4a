from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from logmux.core.config import settings
from logmux.schemas.common import HealthResponse
from logmux.services.host_registry import HostRegistry, get_host_registry


router = APIRouter()


@router.get("", response_model=HealthResponse)
async def basic_health_check(registry: HostRegistry = Depends(get_host_registry)):
    return HealthResponse(
        service=settings.app_name,
        version=settings.app_version,
        hosts=registry.hosts,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/live")
async def liveness_check():
    return {"alive": True, "timestamp": datetime.now(timezone.utc).isoformat()}
