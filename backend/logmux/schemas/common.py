from pydantic import BaseModel
from typing import Optional, Dict, Any, List
from datetime import datetime


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
    status: str = "error"
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "healthy"
    service: str
    version: str
    hosts: List[str]
    timestamp: datetime
