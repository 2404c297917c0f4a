from fastapi import APIRouter

from logmux.api.v1.endpoints import health, logs

api_router = APIRouter()

# Log streaming and export
api_router.include_router(logs.router, tags=["logs"])

# System
api_router.include_router(health.router, prefix="/health", tags=["health"])
