from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(..., description="healthy|unhealthy")
    phase: str


class StatusResponse(BaseModel):
    instance_id: str
    phase: str = Field(..., description="idle|provisioning|syncing|launching|monitoring|recycling")
    started_at: str
    master_endpoint: str | None = None
    mount_path: str | None = None
    container_key: str | None = None
    pid: int | None = None
    child_exited: bool | None = None
    log_file: str | None = None
    recycle_reason: str | None = None


class EventOut(BaseModel):
    id: int
    ts: str
    level: str
    phase: str | None = None
    message: str
