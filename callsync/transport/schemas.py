"""Data contracts for the HTTP endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateSessionRequest(_CamelModel):
    caller_id: str = Field(..., alias="callerId", min_length=1, description="User starting the call")
    callee_id: str = Field(..., alias="calleeId", min_length=1, description="User being called")
    duration_limit: int | None = Field(
        default=None, alias="durationLimit", ge=1, description="Call length in minutes"
    )


class CreateSessionResponse(_CamelModel):
    session_id: str = Field(..., alias="sessionId")
    channel_name: str = Field(..., alias="channelName")
    caller_id: str = Field(..., alias="callerId")
    callee_id: str = Field(..., alias="calleeId")
    duration_limit: int = Field(..., alias="durationLimit")


class SessionInfoResponse(_CamelModel):
    id: str
    caller_id: str | None = Field(default=None, alias="callerId")
    callee_id: str | None = Field(default=None, alias="calleeId")
    duration_limit: int = Field(..., alias="durationLimit")
    status: str
    time_remaining: int = Field(..., alias="timeRemaining")
    start_time: datetime | None = Field(default=None, alias="startTime")


class HealthResponse(_CamelModel):
    status: str = "ok"
    active_sessions: int = Field(..., alias="activeSessions")
    running_sessions: int = Field(..., alias="runningSessions")
    connections: int


class TurnConfigResponse(_CamelModel):
    ice_servers: list[dict[str, Any]] = Field(..., alias="iceServers")
