"""Common schema models shared across API endpoints."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthStatusEnum(str, Enum):
    """Health status values for service components."""
    healthy = "healthy"
    unhealthy = "unhealthy"
    degraded = "degraded"
    disabled = "disabled"


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = Field(default=False, examples=[False])
    error: str = Field(..., examples=["Validation error"])
    message: Optional[str] = None
    details: Optional[List[Dict[str, Any]]] = None
    request_id: Optional[str] = Field(default=None, examples=["a1b2c3d4"])


class ComponentHealth(BaseModel):
    """Health of a single dependency."""
    status: HealthStatusEnum
    message: Optional[str] = None


class HealthStatus(BaseModel):
    """Service health check response."""
    status: HealthStatusEnum
    version: str
    timestamp: datetime
    components: Dict[str, ComponentHealth] = Field(default_factory=dict)
