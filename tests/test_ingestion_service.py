"""Unit tests for the ingestion core, using in-memory fakes for each capability."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from datastore.base import BackendError
from models.records import Sensor, SensorReading
from services.ingestion import (
    AuthenticationError,
    IngestionService,
    StorageError,
    SubmissionValidationError,
    validate_submission,
)

SENSOR = Sensor(
    id="sensor-1",
    user_id="user-1",
    name="attic",
    api_key="key-1",
    password_hash="hash-of-s3cret",
)


class FakeDirectory:
    def __init__(self, sensor: Optional[Sensor] = SENSOR, fail: bool = False) -> None:
        self.sensor = sensor
        self.fail = fail
        self.lookups: List[str] = []

    def find_sensor_by_api_key(self, api_key: str) -> Optional[Sensor]:
        self.lookups.append(api_key)
        if self.fail:
            raise BackendError("lookup failed")
        if self.sensor is not None and self.sensor.api_key == api_key:
            return self.sensor
        return None


class FakeVerifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[tuple[str, str]] = []

    def verify_password(self, password_hash: str, password_attempt: str) -> bool:
        self.calls.append((password_hash, password_attempt))
        if self.fail:
            raise BackendError("rpc failed")
        return password_hash == f"hash-of-{password_attempt}"


class FakeReadings:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.rows: List[SensorReading] = []

    def insert_reading(self, sensor_id: str, data: Dict[str, float]) -> SensorReading:
        if self.fail:
            raise BackendError("insert failed")
        reading = SensorReading(
            id=f"reading-{len(self.rows) + 1}",
            sensor_id=sensor_id,
            data=data,
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        self.rows.append(reading)
        return reading


def _service(
    directory: Optional[FakeDirectory] = None,
    verifier: Optional[FakeVerifier] = None,
    readings: Optional[FakeReadings] = None,
) -> tuple[IngestionService, FakeDirectory, FakeVerifier, FakeReadings]:
    directory = directory or FakeDirectory()
    verifier = verifier or FakeVerifier()
    readings = readings or FakeReadings()
    return IngestionService(directory, verifier, readings), directory, verifier, readings


def _payload(**overrides) -> dict:
    payload = {"api_key": "key-1", "password": "s3cret", "data": {"co2": 412}}
    payload.update(overrides)
    return payload


def test_validate_submission_returns_tagged_result() -> None:
    ok = validate_submission(_payload())
    bad = validate_submission({"api_key": "key-1", "data": {"co2": "high"}})

    assert ok.ok is True
    assert ok.submission is not None
    assert ok.submission.data == {"co2": 412.0}
    assert bad.ok is False
    assert bad.submission is None
    assert sorted(error.field for error in bad.errors) == ["data.co2", "password"]


def test_ingest_stores_reading_for_authenticated_sensor() -> None:
    service, _, verifier, readings = _service()

    reading = service.ingest(_payload())

    assert reading.sensor_id == "sensor-1"
    assert reading.data == {"co2": 412.0}
    assert verifier.calls == [("hash-of-s3cret", "s3cret")]
    assert len(readings.rows) == 1


def test_validation_runs_before_any_backend_call() -> None:
    service, directory, verifier, readings = _service()

    with pytest.raises(SubmissionValidationError) as excinfo:
        service.ingest({"api_key": "key-1", "password": "s3cret"})

    assert [error.field for error in excinfo.value.errors] == ["data"]
    assert directory.lookups == []
    assert verifier.calls == []
    assert readings.rows == []


def test_unknown_key_skips_password_check() -> None:
    service, _, verifier, readings = _service()

    with pytest.raises(AuthenticationError) as excinfo:
        service.ingest(_payload(api_key="other"))

    assert str(excinfo.value) == "Invalid API key"
    assert verifier.calls == []
    assert readings.rows == []


def test_lookup_error_is_reported_as_invalid_key() -> None:
    service, _, verifier, _ = _service(directory=FakeDirectory(fail=True))

    with pytest.raises(AuthenticationError, match="Invalid API key"):
        service.ingest(_payload())

    assert verifier.calls == []


def test_wrong_password_does_not_write() -> None:
    service, _, _, readings = _service()

    with pytest.raises(AuthenticationError, match="Invalid password"):
        service.ingest(_payload(password="nope"))

    assert readings.rows == []


def test_verification_error_is_reported_as_invalid_password() -> None:
    service, _, _, readings = _service(verifier=FakeVerifier(fail=True))

    with pytest.raises(AuthenticationError, match="Invalid password"):
        service.ingest(_payload())

    assert readings.rows == []


def test_sensor_without_password_is_reported_as_invalid_password() -> None:
    unset = SENSOR.model_copy(update={"password_hash": ""})
    service, _, _, readings = _service(directory=FakeDirectory(sensor=unset))

    with pytest.raises(AuthenticationError, match="Invalid password"):
        service.ingest(_payload())

    assert readings.rows == []


def test_insert_failure_raises_storage_error() -> None:
    service, _, _, _ = _service(readings=FakeReadings(fail=True))

    with pytest.raises(StorageError, match="Failed to insert sensor reading") as excinfo:
        service.ingest(_payload())

    assert isinstance(excinfo.value.__cause__, BackendError)
