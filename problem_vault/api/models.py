"""
Request and response models for the control API.

Responses are serialized with camelCase keys.
"""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    """Error body for rejected requests."""

    error: str = Field(..., description="Human-readable reason")


class CollectionStartedResponse(CamelModel):
    message: str
    source_type: str
    status: str = Field(..., description="Always RUNNING")


class CollectionStoppedResponse(CamelModel):
    message: str
    source_type: str


class CollectorStatusResponse(CamelModel):
    """Persisted run state for one source type."""

    source_type: str
    enabled: bool
    status: str = Field(..., description="IDLE, RUNNING or FAILED")
    last_run_at: str = Field(..., description="ISO-8601 timestamp, empty if never run")
    items_last_run: int
    last_error: str = Field(..., description="Empty when the last run succeeded")


class RunLogResponse(CamelModel):
    id: int | None = None
    source_type: str
    status: str = Field(..., description="COMPLETED, FAILED or CANCELLED")
    items_collected: int
    duplicates: int
    new_problems: int
    duration_ms: int
    error: str | None = None
    started_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None


class PipelineStatusResponse(BaseModel):
    running: bool


class HealthResponse(CamelModel):
    """Response model for health check."""

    status: str = Field(..., description="healthy or unhealthy")
    database: str
    running_collectors: list[str] = Field(default_factory=list)
    pipeline_running: bool = False
    version: str
