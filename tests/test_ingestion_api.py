import json
from typing import Dict, Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.base import BackendError
from datastore.local_backend import LocalBackend
from datastore.rest_backend import RestBackend
from models.records import IssuedCredentials, SensorReading


@pytest.fixture
def backend(tmp_path) -> LocalBackend:
    return LocalBackend(name="test", persistence_path=tmp_path / "db.json", bcrypt_rounds=4)


@pytest.fixture
def credentials(backend: LocalBackend) -> IssuedCredentials:
    return backend.create_sensor(
        user_id="user-1", name="greenhouse", is_public=False, password="s3cret"
    )


@pytest.fixture
def api_client(backend: LocalBackend) -> Iterator[TestClient]:
    with TestClient(create_app(backend=backend)) as client:
        yield client


def _payload(credentials: IssuedCredentials, **overrides) -> Dict:
    payload = {
        "api_key": credentials.api_key,
        "password": "s3cret",
        "data": {"temperature": 21.5, "humidity": 40},
    }
    payload.update(overrides)
    return payload


def test_valid_submission_creates_reading(
    api_client: TestClient, backend: LocalBackend, credentials: IssuedCredentials
) -> None:
    response = api_client.post("/api/sensor", json=_payload(credentials))

    assert response.status_code == 201
    assert response.json() == {"message": "Sensor data added successfully"}

    readings = backend.list_readings(credentials.sensor_id, limit=10)
    assert len(readings) == 1
    assert readings[0].sensor_id == credentials.sensor_id
    assert readings[0].data == {"temperature": 21.5, "humidity": 40.0}
    assert readings[0].timestamp.tzinfo is not None


def test_empty_metric_mapping_is_accepted(
    api_client: TestClient, credentials: IssuedCredentials
) -> None:
    response = api_client.post("/api/sensor", json=_payload(credentials, data={}))

    assert response.status_code == 201


@pytest.mark.parametrize("password", ["s3cret", "wrong", ""])
def test_unknown_api_key_is_rejected_regardless_of_password(
    api_client: TestClient, backend: LocalBackend, credentials: IssuedCredentials, password: str
) -> None:
    response = api_client.post(
        "/api/sensor",
        json=_payload(credentials, api_key="not-a-real-key", password=password),
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid API key"}
    assert backend.list_readings(credentials.sensor_id, limit=10) == []


def test_wrong_password_is_rejected(
    api_client: TestClient, backend: LocalBackend, credentials: IssuedCredentials
) -> None:
    response = api_client.post("/api/sensor", json=_payload(credentials, password="guess"))

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid password"}
    assert backend.list_readings(credentials.sensor_id, limit=10) == []


@pytest.mark.parametrize("missing", ["api_key", "password", "data"])
def test_missing_field_returns_field_details(
    api_client: TestClient, credentials: IssuedCredentials, missing: str
) -> None:
    payload = _payload(credentials)
    del payload[missing]

    response = api_client.post("/api/sensor", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request body"
    assert [detail["field"] for detail in body["details"]] == [missing]
    assert body["details"][0]["type"] == "missing"


@pytest.mark.parametrize("value", ["hot", "21.5", True, None, [1, 2], {"nested": 1}])
def test_non_numeric_metric_is_rejected(
    api_client: TestClient, backend: LocalBackend, credentials: IssuedCredentials, value
) -> None:
    response = api_client.post(
        "/api/sensor",
        json=_payload(credentials, data={"temperature": 20.0, "status": value}),
    )

    assert response.status_code == 400
    fields = [detail["field"] for detail in response.json()["details"]]
    assert fields == ["data.status"]
    assert backend.list_readings(credentials.sensor_id, limit=10) == []


def test_wrong_types_are_reported_per_field(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/sensor",
        json={"api_key": 123, "password": ["x"], "data": [1, 2]},
    )

    assert response.status_code == 400
    fields = sorted(detail["field"] for detail in response.json()["details"])
    assert fields == ["api_key", "data", "password"]


def test_invalid_json_is_a_validation_failure(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/sensor",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request body"
    assert body["details"][0]["field"] == "body"


def test_non_object_body_is_a_validation_failure(api_client: TestClient) -> None:
    response = api_client.post("/api/sensor", json=["api_key", "password"])

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"


def test_identical_submissions_create_distinct_rows(
    api_client: TestClient, backend: LocalBackend, credentials: IssuedCredentials
) -> None:
    payload = _payload(credentials)

    first = api_client.post("/api/sensor", json=payload)
    second = api_client.post("/api/sensor", json=payload)

    assert first.status_code == 201
    assert second.status_code == 201
    readings = backend.list_readings(credentials.sensor_id, limit=10)
    assert len(readings) == 2
    assert readings[0].id != readings[1].id


class FailingInsertBackend(LocalBackend):
    def insert_reading(self, sensor_id: str, data: Dict[str, float]) -> SensorReading:
        raise BackendError("database unavailable")


def test_insert_failure_returns_server_error_without_reading(tmp_path) -> None:
    backend = FailingInsertBackend(name="failing", bcrypt_rounds=4)
    credentials = backend.create_sensor("user-1", "boiler", False, "s3cret")

    with TestClient(create_app(backend=backend)) as client:
        response = client.post("/api/sensor", json=_payload(credentials))

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to insert sensor reading"}
    assert backend.list_readings(credentials.sensor_id, limit=10) == []


def test_persistence_failure_leaves_no_reading(
    api_client: TestClient, backend: LocalBackend, credentials: IssuedCredentials, tmp_path
) -> None:
    backend.persistence_path = tmp_path / "missing-dir" / "db.json"

    response = api_client.post("/api/sensor", json=_payload(credentials))

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to insert sensor reading"}
    assert backend.list_readings(credentials.sensor_id, limit=10) == []


class ExplodingVerifierBackend(LocalBackend):
    def verify_password(self, password_hash: str, password_attempt: str) -> bool:
        raise RuntimeError("boom")


def test_unexpected_error_returns_generic_server_error() -> None:
    backend = ExplodingVerifierBackend(name="exploding", bcrypt_rounds=4)
    credentials = backend.create_sensor("user-1", "boiler", False, "s3cret")

    with TestClient(create_app(backend=backend)) as client:
        response = client.post("/api/sensor", json=_payload(credentials))

    assert response.status_code == 500
    assert response.json() == {"error": "An unexpected error occurred"}
    assert backend.list_readings(credentials.sensor_id, limit=10) == []


def test_hosted_backend_insert_without_representation_is_created() -> None:
    sensor_row = {
        "id": "sensor-1",
        "user_id": "user-1",
        "name": "attic",
        "is_public": False,
        "api_key": "key-1",
        "password_hash": "$2a$06$hash",
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": None,
    }
    inserted = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/rest/v1/sensors":
            return httpx.Response(200, json=[sensor_row])
        if request.url.path == "/rest/v1/rpc/verify_password":
            return httpx.Response(200, content=b"true")
        if request.url.path == "/rest/v1/sensor_readings":
            inserted.append(json.loads(request.content))
            return httpx.Response(201)
        return httpx.Response(404)

    backend = RestBackend(
        base_url="https://db.example.test",
        service_key="service-key",
        transport=httpx.MockTransport(handler),
    )

    with TestClient(create_app(backend=backend)) as client:
        response = client.post(
            "/api/sensor",
            json={"api_key": "key-1", "password": "s3cret", "data": {"temperature": 21.5}},
        )

    assert response.status_code == 201
    assert response.json() == {"message": "Sensor data added successfully"}
    assert inserted == [{"sensor_id": "sensor-1", "data": {"temperature": 21.5}}]
