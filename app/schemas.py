"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AllowInfNan, BaseModel, Field, Strict, StrictStr

# Real numbers only: no numeric strings, no booleans, no NaN or infinity.
MetricValue = Annotated[float, Strict(), AllowInfNan(False)]


class SensorSubmission(BaseModel):
    """Body posted by a sensor device to record one reading."""

    api_key: StrictStr
    password: StrictStr
    data: Dict[str, MetricValue]


class FieldError(BaseModel):
    field: str
    message: str
    type: str


class IngestAccepted(BaseModel):
    message: str = "Sensor data added successfully"


class IngestFailure(BaseModel):
    error: str
    details: Optional[List[FieldError]] = None


class SensorCreate(BaseModel):
    name: str
    is_public: bool = False
    password: str = Field(..., min_length=1, description="Shared secret used by the device.")


class SensorCreated(BaseModel):
    """Credentials returned once, when a sensor is registered."""

    sensor_id: str
    api_key: str


class SensorUpdate(BaseModel):
    name: Optional[str] = None
    is_public: Optional[bool] = None


class SensorSummary(BaseModel):
    id: str
    name: str
    is_public: bool


class SensorDetail(SensorSummary):
    """Owner view of a sensor; includes the API key but never the password hash."""

    api_key: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Reading(BaseModel):
    timestamp: datetime
    data: Dict[str, float]


class GroupCreate(BaseModel):
    name: str


class GroupUpdate(BaseModel):
    name: str


class GroupSummary(BaseModel):
    id: str
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GroupDetail(GroupSummary):
    sensors: List[SensorSummary] = Field(default_factory=list)
    available_sensors: List[SensorSummary] = Field(default_factory=list)


class GroupMembershipCreate(BaseModel):
    sensor_id: str = Field(..., min_length=1)


class DashboardSummary(BaseModel):
    sensor_count: int = Field(..., ge=0)
    group_count: int = Field(..., ge=0)


class ProfileUpdate(BaseModel):
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class ProfileOut(BaseModel):
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    updated_at: Optional[datetime] = None


def dump_field_errors(errors: List[Dict[str, Any]]) -> List[FieldError]:
    """Flatten pydantic error dicts into one entry per offending field."""
    return [
        FieldError(
            field=".".join(str(part) for part in error.get("loc", ())) or "body",
            message=error.get("msg", "Invalid value"),
            type=error.get("type", "value_error"),
        )
        for error in errors
    ]
