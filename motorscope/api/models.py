"""
Response models for the orchestrator API.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ComponentHealth(BaseModel):
    status: Literal["healthy", "unhealthy"]
    latency_ms: float | None = None
    details: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded"]
    version: str
    components: dict[str, ComponentHealth] = Field(default_factory=dict)


class AlarmInfo(BaseModel):
    name: str
    scheduled_time: str
    period_minutes: float | None = None


class StatusResponse(BaseModel):
    session: dict[str, Any]
    refresh: dict[str, Any]
    alarms: list[AlarmInfo] = Field(default_factory=list)
