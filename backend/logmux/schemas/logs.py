from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

CONTAINER_STARTED = "container-started"
CONTAINER_STOPPED = "container-stopped"


class LogEvent(BaseModel):
    """One decoded log line of a container, as sent on the wire."""
    message: Any = Field(..., description="Log line text, or the parsed object for JSON lines")
    timestamp: int = Field(0, description="Nanoseconds since epoch, 0 when unknown")
    level: Optional[str] = None
    stream: Optional[str] = Field(
        None,
        description="stdout or stderr when exactly one was requested; null when both are merged, "
                    "since the demultiplexed feed does not carry each line's origin",
    )
    container_id: str = Field(..., alias="containerId")
    host: str

    class Config:
        populate_by_name = True


class ContainerEvent(BaseModel):
    """Lifecycle transition synthesized by the multiplexer."""
    actor_id: str = Field(..., alias="actorId")
    name: Literal["container-started", "container-stopped"]
    host: str

    class Config:
        populate_by_name = True
