from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class StartRequest(BaseModel):
    role: Optional[str] = None
    permissions: Optional[list[str]] = None

    @field_validator("permissions", mode="before")
    @classmethod
    def normalize_permissions(cls, value: object) -> Optional[list[str]]:
        if value is None:
            return None
        if isinstance(value, str):
            items = [item.strip() for item in value.split(",")]
        elif isinstance(value, list):
            items = [str(item).strip() for item in value]
        else:
            raise ValueError("permissions must be a list or comma-separated string")

        normalized: list[str] = []
        for item in items:
            name = item.lower()
            if name and name not in normalized:
                normalized.append(name)
        return normalized


class EngineActionResponse(BaseModel):
    success: bool
    message: str


class EngineStatusResponse(BaseModel):
    status: str
    role: str
    permissions: list[str]
    started_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    in_flight: int = 0


class ContactStateResponse(BaseModel):
    contact_id: str
    state: str
    ref_id: Optional[int] = None
    updated_at: Optional[datetime] = None
