"""Authenticated ingestion of sensor readings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import ValidationError

from app.schemas import FieldError, SensorSubmission, dump_field_errors
from datastore.base import BackendError, PasswordVerifier, ReadingStore, SensorDirectory
from models.records import SensorReading

logger = logging.getLogger(__name__)

INVALID_API_KEY = "Invalid API key"
INVALID_PASSWORD = "Invalid password"
INSERT_FAILED = "Failed to insert sensor reading"


class SubmissionValidationError(ValueError):
    """The request body does not have the expected shape."""

    def __init__(self, errors: List[FieldError]) -> None:
        super().__init__("Invalid request body")
        self.errors = errors


class AuthenticationError(PermissionError):
    """The API key or password did not authenticate a sensor."""


class StorageError(RuntimeError):
    """The reading could not be written after successful authentication."""


@dataclass
class ValidationResult:
    """Outcome of the structural check: a submission or the field errors."""

    submission: Optional[SensorSubmission] = None
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.submission is not None and not self.errors


def validate_submission(payload: Any) -> ValidationResult:
    try:
        submission = SensorSubmission.model_validate(payload)
    except ValidationError as exc:
        details = exc.errors(include_url=False, include_context=False, include_input=False)
        return ValidationResult(errors=dump_field_errors(details))
    return ValidationResult(submission=submission)


class IngestionService:
    """Validates, authenticates and stores one reading per call.

    Each call makes at most three backend round trips (lookup, password
    check, insert) and writes only on the success path. Nothing is retried.
    """

    def __init__(
        self,
        sensors: SensorDirectory,
        verifier: PasswordVerifier,
        readings: ReadingStore,
    ) -> None:
        self.sensors = sensors
        self.verifier = verifier
        self.readings = readings

    def ingest(self, payload: Any) -> SensorReading:
        result = validate_submission(payload)
        if not result.ok:
            logger.info(
                "Rejected malformed sensor submission",
                extra={"error_count": len(result.errors)},
            )
            raise SubmissionValidationError(result.errors)
        assert result.submission is not None
        submission = result.submission

        try:
            sensor = self.sensors.find_sensor_by_api_key(submission.api_key)
        except BackendError as exc:
            logger.warning("Sensor lookup failed", extra={"reason": str(exc)})
            sensor = None
        if sensor is None:
            logger.info("Rejected submission", extra={"reason": "unknown api key"})
            raise AuthenticationError(INVALID_API_KEY)

        try:
            verified = self.verifier.verify_password(sensor.password_hash, submission.password)
        except BackendError as exc:
            logger.warning(
                "Password verification failed",
                extra={"sensor_id": sensor.id, "reason": str(exc)},
            )
            verified = False
        if not verified:
            logger.info(
                "Rejected submission",
                extra={"sensor_id": sensor.id, "reason": "password mismatch"},
            )
            raise AuthenticationError(INVALID_PASSWORD)

        try:
            reading = self.readings.insert_reading(sensor.id, dict(submission.data))
        except BackendError as exc:
            logger.error(
                "Error inserting sensor reading",
                extra={"sensor_id": sensor.id, "reason": str(exc)},
            )
            raise StorageError(INSERT_FAILED) from exc

        logger.info(
            "Stored sensor reading",
            extra={"sensor_id": sensor.id, "metric_count": len(submission.data)},
        )
        return reading
