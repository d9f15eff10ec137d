"""Host-facing request/response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ActionResult(BaseModel):
    type: str
    status: str  # "success" | "failed" | "skipped"
    data: dict[str, Any] = Field(default_factory=dict)


class ChatResponse(BaseModel):
    reply: str
    session_id: str
    context: dict[str, Any]
    actions: list[ActionResult] = Field(default_factory=list)


class SlotView(BaseModel):
    start: datetime
    end: datetime
    available: bool
