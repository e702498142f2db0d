"""Sensor registration, editing and read access."""

from __future__ import annotations

import logging
from typing import Optional

from app.schemas import (
    DashboardSummary,
    Reading,
    SensorCreate,
    SensorCreated,
    SensorDetail,
    SensorSummary,
    SensorUpdate,
)
from datastore.base import Backend
from models.records import Sensor, SensorReading

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of a secret.
MAX_PASSWORD_BYTES = 72


def to_summary(sensor: Sensor) -> SensorSummary:
    return SensorSummary(id=sensor.id, name=sensor.name, is_public=sensor.is_public)


def to_reading(reading: SensorReading) -> Reading:
    return Reading(timestamp=reading.timestamp, data=dict(reading.data))


class SensorService:
    """Owner-scoped sensor operations plus the public read path."""

    def __init__(self, backend: Backend, readings_limit: int = 100) -> None:
        self.backend = backend
        self.readings_limit = readings_limit

    def create_sensor(self, user_id: str, request: SensorCreate) -> SensorCreated:
        name = request.name.strip()
        if not name:
            raise ValueError("Sensor name must not be blank.")
        if len(request.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Sensor password must be at most {MAX_PASSWORD_BYTES} bytes.")

        credentials = self.backend.create_sensor(
            user_id=user_id,
            name=name,
            is_public=request.is_public,
            password=request.password,
        )
        logger.info(
            "Registered sensor",
            extra={"sensor_id": credentials.sensor_id, "user_id": user_id},
        )
        return SensorCreated(sensor_id=credentials.sensor_id, api_key=credentials.api_key)

    def list_sensors(self, user_id: str) -> list[SensorSummary]:
        return [to_summary(sensor) for sensor in self.backend.list_sensors(user_id)]

    def get_sensor(self, user_id: str, sensor_id: str) -> SensorDetail:
        sensor = self._owned_sensor(user_id, sensor_id)
        return self._detail(sensor)

    def update_sensor(
        self, user_id: str, sensor_id: str, request: SensorUpdate
    ) -> SensorDetail:
        self._owned_sensor(user_id, sensor_id)
        name: Optional[str] = None
        if request.name is not None:
            name = request.name.strip()
            if not name:
                raise ValueError("Sensor name must not be blank.")

        updated = self.backend.update_sensor(
            sensor_id, name=name, is_public=request.is_public
        )
        if updated is None:
            raise KeyError(f"Sensor {sensor_id!r} not found.")
        logger.info("Updated sensor", extra={"sensor_id": sensor_id, "user_id": user_id})
        return self._detail(updated)

    def recent_readings(
        self, user_id: str, sensor_id: str, limit: Optional[int] = None
    ) -> list[Reading]:
        self._owned_sensor(user_id, sensor_id)
        return self._readings(sensor_id, limit)

    def public_sensor(self, sensor_id: str) -> SensorSummary:
        return to_summary(self._public_sensor(sensor_id))

    def public_readings(self, sensor_id: str, limit: Optional[int] = None) -> list[Reading]:
        self._public_sensor(sensor_id)
        return self._readings(sensor_id, limit)

    def dashboard(self, user_id: str) -> DashboardSummary:
        return DashboardSummary(
            sensor_count=self.backend.count_sensors(user_id),
            group_count=self.backend.count_groups(user_id),
        )

    def _readings(self, sensor_id: str, limit: Optional[int]) -> list[Reading]:
        effective = self.readings_limit if limit is None else min(limit, self.readings_limit)
        rows = self.backend.list_readings(sensor_id, max(effective, 1))
        return [to_reading(reading) for reading in rows]

    def _owned_sensor(self, user_id: str, sensor_id: str) -> Sensor:
        sensor = self.backend.get_sensor(sensor_id)
        if sensor is None or sensor.user_id != user_id:
            raise KeyError(f"Sensor {sensor_id!r} not found.")
        return sensor

    def _public_sensor(self, sensor_id: str) -> Sensor:
        sensor = self.backend.get_sensor(sensor_id)
        if sensor is None or not sensor.is_public:
            raise KeyError("Sensor not found or not public")
        return sensor

    @staticmethod
    def _detail(sensor: Sensor) -> SensorDetail:
        return SensorDetail(
            id=sensor.id,
            name=sensor.name,
            is_public=sensor.is_public,
            api_key=sensor.api_key,
            created_at=sensor.created_at,
            updated_at=sensor.updated_at,
        )
