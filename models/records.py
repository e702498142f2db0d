"""Rows stored by the backend, shared across services."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


class Sensor(BaseModel):
    """A registered sensor together with its ingestion credentials."""

    id: str
    user_id: str
    name: str
    is_public: bool = False
    api_key: str
    password_hash: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("is_public", mode="before")
    @classmethod
    def _null_is_private(cls, value: object) -> object:
        return False if value is None else value

    @field_validator("password_hash", mode="before")
    @classmethod
    def _null_is_unset(cls, value: object) -> object:
        return "" if value is None else value


class SensorReading(BaseModel):
    """One timestamped bundle of numeric metrics for a sensor."""

    id: Optional[str] = None
    sensor_id: str
    data: Dict[str, float] = Field(default_factory=dict)
    timestamp: datetime

    @field_validator("id", "sensor_id", mode="before")
    @classmethod
    def _integer_ids_as_text(cls, value: object) -> object:
        return str(value) if isinstance(value, int) and not isinstance(value, bool) else value


class Group(BaseModel):
    id: str
    user_id: str
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GroupMapping(BaseModel):
    block_id: str
    sensor_id: str


class Profile(BaseModel):
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    updated_at: Optional[datetime] = None


class IssuedCredentials(BaseModel):
    """Identifier and API key handed out when a sensor is created."""

    sensor_id: str
    api_key: str
