"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"


class ActiveCallResponse(BaseModel):
    call_key: str
    language: str
    legs: list[str] = Field(description="Media legs currently attached (inbound/outbound).")
    started: bool = Field(description="True once both legs are attached and audio is being relayed.")
