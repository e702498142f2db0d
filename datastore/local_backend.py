from __future__ import annotations
import json
import logging
import secrets
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional
from uuid import uuid4

import bcrypt

from datastore.base import BackendError, ConflictError
from models.records import (
    Group,
    GroupMapping,
    IssuedCredentials,
    Profile,
    Sensor,
    SensorReading,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalBackend:
    """In-process tables with optional JSON persistence.

    Every row handed out is a deep copy, so callers can never mutate stored
    state. Writes that cannot be persisted are undone before the error is
    raised.
    """

    def __init__(
        self,
        name: str = "sensorhub",
        persistence_path: Optional[Path] = None,
        bcrypt_rounds: int = 12,
    ) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self.bcrypt_rounds = bcrypt_rounds
        self._sensors: Dict[str, Sensor] = {}
        self._readings: List[SensorReading] = []
        self._groups: Dict[str, Group] = {}
        self._mappings: List[GroupMapping] = []
        self._profiles: Dict[str, Profile] = {}
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    # Ingestion capabilities

    def find_sensor_by_api_key(self, api_key: str) -> Optional[Sensor]:
        candidate = api_key.encode("utf-8")
        with self._lock:
            for sensor in self._sensors.values():
                if secrets.compare_digest(sensor.api_key.encode("utf-8"), candidate):
                    return sensor.model_copy(deep=True)
        return None

    def verify_password(self, password_hash: str, password_attempt: str) -> bool:
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(
                password_attempt.encode("utf-8"), password_hash.encode("utf-8")
            )
        except ValueError:
            return False

    def insert_reading(self, sensor_id: str, data: Dict[str, float]) -> SensorReading:
        reading = SensorReading(
            id=str(uuid4()),
            sensor_id=sensor_id,
            data=dict(data),
            timestamp=_utcnow(),
        )
        with self._lock:
            if sensor_id not in self._sensors:
                raise BackendError(f"Sensor {sensor_id!r} does not exist.")
            self._readings.append(reading)
            self._commit(self._readings.pop)
        return reading.model_copy(deep=True)

    # Sensors

    def create_sensor(
        self, user_id: str, name: str, is_public: bool, password: str
    ) -> IssuedCredentials:
        password_hash = bcrypt.hashpw(
            password.encode("utf-8"), bcrypt.gensalt(rounds=self.bcrypt_rounds)
        ).decode("utf-8")
        now = _utcnow()
        with self._lock:
            known_keys = {sensor.api_key for sensor in self._sensors.values()}
            api_key = secrets.token_urlsafe(32)
            while api_key in known_keys:
                api_key = secrets.token_urlsafe(32)
            sensor = Sensor(
                id=str(uuid4()),
                user_id=user_id,
                name=name,
                is_public=is_public,
                api_key=api_key,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            self._sensors[sensor.id] = sensor
            self._commit(lambda: self._sensors.pop(sensor.id))
        return IssuedCredentials(sensor_id=sensor.id, api_key=sensor.api_key)

    def get_sensor(self, sensor_id: str) -> Optional[Sensor]:
        with self._lock:
            sensor = self._sensors.get(sensor_id)
            return sensor.model_copy(deep=True) if sensor is not None else None

    def list_sensors(self, user_id: str) -> list[Sensor]:
        with self._lock:
            return [
                sensor.model_copy(deep=True)
                for sensor in self._sensors.values()
                if sensor.user_id == user_id
            ]

    def update_sensor(
        self,
        sensor_id: str,
        name: Optional[str] = None,
        is_public: Optional[bool] = None,
    ) -> Optional[Sensor]:
        with self._lock:
            previous = self._sensors.get(sensor_id)
            if previous is None:
                return None
            changes: Dict[str, object] = {"updated_at": _utcnow()}
            if name is not None:
                changes["name"] = name
            if is_public is not None:
                changes["is_public"] = is_public
            updated = previous.model_copy(update=changes, deep=True)
            self._sensors[sensor_id] = updated
            self._commit(lambda: self._sensors.__setitem__(sensor_id, previous))
            return updated.model_copy(deep=True)

    def list_readings(self, sensor_id: str, limit: int) -> list[SensorReading]:
        with self._lock:
            matching = [
                (position, reading)
                for position, reading in enumerate(self._readings)
                if reading.sensor_id == sensor_id
            ]
        matching.sort(key=lambda item: (item[1].timestamp, item[0]), reverse=True)
        return [reading.model_copy(deep=True) for _, reading in matching[:limit]]

    def count_sensors(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for sensor in self._sensors.values() if sensor.user_id == user_id)

    # Groups

    def create_group(self, user_id: str, name: str) -> Group:
        now = _utcnow()
        group = Group(
            id=str(uuid4()), user_id=user_id, name=name, created_at=now, updated_at=now
        )
        with self._lock:
            self._groups[group.id] = group
            self._commit(lambda: self._groups.pop(group.id))
        return group.model_copy(deep=True)

    def get_group(self, group_id: str) -> Optional[Group]:
        with self._lock:
            group = self._groups.get(group_id)
            return group.model_copy(deep=True) if group is not None else None

    def list_groups(self, user_id: str) -> list[Group]:
        with self._lock:
            return [
                group.model_copy(deep=True)
                for group in self._groups.values()
                if group.user_id == user_id
            ]

    def update_group(self, group_id: str, name: str) -> Optional[Group]:
        with self._lock:
            previous = self._groups.get(group_id)
            if previous is None:
                return None
            updated = previous.model_copy(update={"name": name, "updated_at": _utcnow()})
            self._groups[group_id] = updated
            self._commit(lambda: self._groups.__setitem__(group_id, previous))
            return updated.model_copy(deep=True)

    def add_sensor_to_group(self, group_id: str, sensor_id: str) -> None:
        mapping = GroupMapping(block_id=group_id, sensor_id=sensor_id)
        with self._lock:
            if group_id not in self._groups:
                raise BackendError(f"Group {group_id!r} does not exist.")
            if sensor_id not in self._sensors:
                raise BackendError(f"Sensor {sensor_id!r} does not exist.")
            if mapping in self._mappings:
                raise ConflictError(
                    f"Sensor {sensor_id!r} is already part of group {group_id!r}."
                )
            self._mappings.append(mapping)
            self._commit(self._mappings.pop)

    def list_group_sensors(self, group_id: str) -> list[Sensor]:
        with self._lock:
            return [
                self._sensors[mapping.sensor_id].model_copy(deep=True)
                for mapping in self._mappings
                if mapping.block_id == group_id and mapping.sensor_id in self._sensors
            ]

    def count_groups(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for group in self._groups.values() if group.user_id == user_id)

    # Profiles

    def get_profile(self, user_id: str) -> Optional[Profile]:
        with self._lock:
            profile = self._profiles.get(user_id)
            return profile.model_copy(deep=True) if profile is not None else None

    def upsert_profile(self, profile: Profile) -> Profile:
        stored = profile.model_copy(deep=True)
        with self._lock:
            previous = self._profiles.get(profile.id)
            self._profiles[profile.id] = stored

            def undo() -> None:
                if previous is None:
                    self._profiles.pop(profile.id, None)
                else:
                    self._profiles[profile.id] = previous

            self._commit(undo)
        return stored.model_copy(deep=True)

    def close(self) -> None:
        """Nothing to release; present for parity with remote backends."""

    # Persistence

    def _commit(self, undo: Callable[[], object]) -> None:
        # Caller must hold self._lock.
        try:
            self._persist()
        except OSError as exc:
            undo()
            logger.error(
                "Failed to persist backend state",
                extra={"backend": self.name, "reason": str(exc)},
            )
            raise BackendError("Failed to persist backend state.") from exc

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "sensors": {
                key: item.model_dump(mode="json") for key, item in self._sensors.items()
            },
            "sensor_readings": [item.model_dump(mode="json") for item in self._readings],
            "sensor_blocks": {
                key: item.model_dump(mode="json") for key, item in self._groups.items()
            },
            "sensor_block_mappings": [
                item.model_dump(mode="json") for item in self._mappings
            ],
            "profiles": {
                key: item.model_dump(mode="json") for key, item in self._profiles.items()
            },
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Ignoring unreadable backend state",
                extra={"backend": self.name, "reason": str(self.persistence_path)},
            )
            data = {}

        for key, payload in data.get("sensors", {}).items():
            self._sensors[key] = Sensor.model_validate(payload)
        self._readings = [
            SensorReading.model_validate(payload)
            for payload in data.get("sensor_readings", [])
        ]
        for key, payload in data.get("sensor_blocks", {}).items():
            self._groups[key] = Group.model_validate(payload)
        self._mappings = [
            GroupMapping.model_validate(payload)
            for payload in data.get("sensor_block_mappings", [])
        ]
        for key, payload in data.get("profiles", {}).items():
            self._profiles[key] = Profile.model_validate(payload)
