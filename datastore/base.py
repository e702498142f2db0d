"""Capability interfaces implemented by every backend."""

from __future__ import annotations

from typing import Dict, Optional, Protocol

from models.records import (
    Group,
    IssuedCredentials,
    Profile,
    Sensor,
    SensorReading,
)


class BackendError(RuntimeError):
    """Raised when a backend call fails or returns an unusable answer."""


class ConflictError(BackendError):
    """Raised when a write would violate a uniqueness constraint."""


class SensorDirectory(Protocol):
    def find_sensor_by_api_key(self, api_key: str) -> Optional[Sensor]: ...


class PasswordVerifier(Protocol):
    def verify_password(self, password_hash: str, password_attempt: str) -> bool: ...


class ReadingStore(Protocol):
    def insert_reading(self, sensor_id: str, data: Dict[str, float]) -> SensorReading: ...


class Backend(SensorDirectory, PasswordVerifier, ReadingStore, Protocol):
    """Full surface used by the HTTP layer."""

    def create_sensor(
        self, user_id: str, name: str, is_public: bool, password: str
    ) -> IssuedCredentials: ...

    def get_sensor(self, sensor_id: str) -> Optional[Sensor]: ...

    def list_sensors(self, user_id: str) -> list[Sensor]: ...

    def update_sensor(
        self,
        sensor_id: str,
        name: Optional[str] = None,
        is_public: Optional[bool] = None,
    ) -> Optional[Sensor]: ...

    def list_readings(self, sensor_id: str, limit: int) -> list[SensorReading]: ...

    def count_sensors(self, user_id: str) -> int: ...

    def create_group(self, user_id: str, name: str) -> Group: ...

    def get_group(self, group_id: str) -> Optional[Group]: ...

    def list_groups(self, user_id: str) -> list[Group]: ...

    def update_group(self, group_id: str, name: str) -> Optional[Group]: ...

    def add_sensor_to_group(self, group_id: str, sensor_id: str) -> None: ...

    def list_group_sensors(self, group_id: str) -> list[Sensor]: ...

    def count_groups(self, user_id: str) -> int: ...

    def get_profile(self, user_id: str) -> Optional[Profile]: ...

    def upsert_profile(self, profile: Profile) -> Profile: ...

    def close(self) -> None: ...
