from logmux.schemas.logs import LogEvent, ContainerEvent, CONTAINER_STARTED, CONTAINER_STOPPED
from logmux.schemas.common import ErrorResponse, HealthResponse

__all__ = [
    "LogEvent", "ContainerEvent", "CONTAINER_STARTED", "CONTAINER_STOPPED",
    "ErrorResponse", "HealthResponse"
]
