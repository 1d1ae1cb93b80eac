from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, StrictInt, StrictStr, field_serializer


class PasteCreateRequest(BaseModel):
    content: StrictStr = Field(..., description="Paste content")
    ttl_seconds: Optional[StrictInt] = Field(
        default=None,
        description="Optional time-to-live in seconds (>= 1)",
    )
    max_views: Optional[StrictInt] = Field(
        default=None,
        description="Optional maximum number of views (>= 1)",
    )


class PasteCreatedResponse(BaseModel):
    id: str
    url: str


class PasteViewResponse(BaseModel):
    content: str
    remaining_views: Optional[int]
    expires_at: Optional[datetime]

    @field_serializer("expires_at")
    def serialize_expires_at(self, value: Optional[datetime]) -> Optional[str]:
        """UTC with millisecond precision, e.g. ``2026-01-01T12:01:00.000Z``."""
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class HealthResponse(BaseModel):
    ok: bool = True
