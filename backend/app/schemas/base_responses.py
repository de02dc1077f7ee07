"""
Base response schemas for infrastructure endpoints.
"""

from datetime import datetime, timezone
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

from ..core.constants import API_VERSION, BRAND_NAME


class HealthCheckResponse(BaseModel):
    """Standard health check response."""

    status: str = Field(description="Service health status", pattern="^(healthy|degraded|unhealthy)$")
    service: str = Field(default=f"{BRAND_NAME} API", description="Service name")
    version: str = Field(default=API_VERSION, description="API version")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="Check timestamp"
    )
    checks: Dict[str, bool] = Field(description="Individual component health checks")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "service": f"{BRAND_NAME} API",
                "version": API_VERSION,
                "timestamp": "2025-01-20T10:30:00Z",
                "checks": {"database": True, "redis": True},
            }
        }
    )
