"""Backend reached over the PostgREST API of a hosted database service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from datastore.base import BackendError, ConflictError
from models.records import (
    Group,
    IssuedCredentials,
    Profile,
    Sensor,
    SensorReading,
)

logger = logging.getLogger(__name__)

_SENSOR_COLUMNS = "id,user_id,name,is_public,api_key,password_hash,created_at,updated_at"


class RestBackend:
    """Table queries and stored procedures issued over HTTP.

    The service key bypasses row-level security, so every owner-scoped query
    filters on ``user_id`` explicitly.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=f"{self.base_url}/rest/v1",
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
            },
        )

    def close(self) -> None:
        self._client.close()

    def find_sensor_by_api_key(self, api_key: str) -> Optional[Sensor]:
        rows = self._select("sensors", {"select": _SENSOR_COLUMNS, "api_key": f"eq.{api_key}"})
        return Sensor.model_validate(rows[0]) if rows else None

    def verify_password(self, password_hash: str, password_attempt: str) -> bool:
        result = self._rpc(
            "verify_password",
            {"password_hash": password_hash, "password_attempt": password_attempt},
        )
        return result is True

    def insert_reading(self, sensor_id: str, data: Dict[str, float]) -> SensorReading:
        # The row exists once the POST succeeds; the reply body is not needed.
        self._send(
            "POST",
            "/sensor_readings",
            json={"sensor_id": sensor_id, "data": data},
            headers={"Prefer": "return=minimal"},
        )
        return SensorReading(
            sensor_id=sensor_id,
            data=dict(data),
            timestamp=datetime.now(timezone.utc),
        )

    def create_sensor(
        self, user_id: str, name: str, is_public: bool, password: str
    ) -> IssuedCredentials:
        result = self._rpc(
            "create_sensor",
            {
                "p_user_id": user_id,
                "p_name": name,
                "p_is_public": is_public,
                "p_password": password,
            },
        )
        if not isinstance(result, list) or not result:
            raise BackendError("create_sensor returned no credentials.")
        return IssuedCredentials.model_validate(result[0])

    def get_sensor(self, sensor_id: str) -> Optional[Sensor]:
        rows = self._select("sensors", {"select": _SENSOR_COLUMNS, "id": f"eq.{sensor_id}"})
        return Sensor.model_validate(rows[0]) if rows else None

    def list_sensors(self, user_id: str) -> list[Sensor]:
        rows = self._select(
            "sensors",
            {"select": _SENSOR_COLUMNS, "user_id": f"eq.{user_id}", "order": "created_at.asc"},
        )
        return [Sensor.model_validate(row) for row in rows]

    def update_sensor(
        self,
        sensor_id: str,
        name: Optional[str] = None,
        is_public: Optional[bool] = None,
    ) -> Optional[Sensor]:
        changes: Dict[str, Any] = {"updated_at": _utcnow_iso()}
        if name is not None:
            changes["name"] = name
        if is_public is not None:
            changes["is_public"] = is_public
        rows = self._write("PATCH", "sensors", params={"id": f"eq.{sensor_id}"}, json=changes)
        return Sensor.model_validate(rows[0]) if rows else None

    def list_readings(self, sensor_id: str, limit: int) -> list[SensorReading]:
        rows = self._select(
            "sensor_readings",
            {
                "select": "*",
                "sensor_id": f"eq.{sensor_id}",
                "order": "timestamp.desc",
                "limit": str(limit),
            },
        )
        return [SensorReading.model_validate(row) for row in rows]

    def count_sensors(self, user_id: str) -> int:
        return self._count("sensors", user_id)

    def create_group(self, user_id: str, name: str) -> Group:
        rows = self._write("POST", "sensor_blocks", json={"user_id": user_id, "name": name})
        if not rows:
            raise BackendError("Insert into sensor_blocks returned no row.")
        return Group.model_validate(rows[0])

    def get_group(self, group_id: str) -> Optional[Group]:
        rows = self._select("sensor_blocks", {"select": "*", "id": f"eq.{group_id}"})
        return Group.model_validate(rows[0]) if rows else None

    def list_groups(self, user_id: str) -> list[Group]:
        rows = self._select(
            "sensor_blocks",
            {"select": "*", "user_id": f"eq.{user_id}", "order": "created_at.asc"},
        )
        return [Group.model_validate(row) for row in rows]

    def update_group(self, group_id: str, name: str) -> Optional[Group]:
        rows = self._write(
            "PATCH",
            "sensor_blocks",
            params={"id": f"eq.{group_id}"},
            json={"name": name, "updated_at": _utcnow_iso()},
        )
        return Group.model_validate(rows[0]) if rows else None

    def add_sensor_to_group(self, group_id: str, sensor_id: str) -> None:
        self._write(
            "POST",
            "sensor_block_mappings",
            json={"block_id": group_id, "sensor_id": sensor_id},
        )

    def list_group_sensors(self, group_id: str) -> list[Sensor]:
        rows = self._select(
            "sensor_block_mappings",
            {"select": f"sensors({_SENSOR_COLUMNS})", "block_id": f"eq.{group_id}"},
        )
        return [
            Sensor.model_validate(row["sensors"]) for row in rows if row.get("sensors")
        ]

    def count_groups(self, user_id: str) -> int:
        return self._count("sensor_blocks", user_id)

    def get_profile(self, user_id: str) -> Optional[Profile]:
        rows = self._select(
            "profiles",
            {"select": "id,username,full_name,avatar_url,updated_at", "id": f"eq.{user_id}"},
        )
        return Profile.model_validate(rows[0]) if rows else None

    def upsert_profile(self, profile: Profile) -> Profile:
        rows = self._write(
            "POST",
            "profiles",
            json=profile.model_dump(mode="json"),
            prefer="resolution=merge-duplicates,return=representation",
        )
        return Profile.model_validate(rows[0]) if rows else profile

    def _select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        response = self._send("GET", f"/{table}", params=params)
        return _as_rows(response)

    def _count(self, table: str, user_id: str) -> int:
        response = self._send(
            "GET",
            f"/{table}",
            params={"select": "id", "user_id": f"eq.{user_id}"},
            headers={"Prefer": "count=exact"},
        )
        content_range = response.headers.get("content-range", "")
        _, _, total = content_range.partition("/")
        if total.isdigit():
            return int(total)
        return len(_as_rows(response))

    def _write(
        self,
        method: str,
        table: str,
        json: Any,
        params: Optional[Dict[str, str]] = None,
        prefer: str = "return=representation",
    ) -> List[Dict[str, Any]]:
        response = self._send(
            method, f"/{table}", params=params, json=json, headers={"Prefer": prefer}
        )
        if not response.content:
            return []
        return _as_rows(response)

    def _rpc(self, name: str, arguments: Dict[str, Any]) -> Any:
        response = self._send("POST", f"/rpc/{name}", json=arguments)
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(f"Procedure {name!r} returned invalid JSON.") from exc

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(
                "Backend request failed",
                extra={"backend": self.base_url, "reason": str(exc)},
            )
            raise BackendError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 409:
            raise ConflictError(_describe(response))
        if response.is_error:
            logger.warning(
                "Backend returned an error status",
                extra={"backend": self.base_url, "status": response.status_code},
            )
            raise BackendError(_describe(response))
        return response


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_rows(response: httpx.Response) -> List[Dict[str, Any]]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise BackendError("Backend returned invalid JSON.") from exc
    if isinstance(payload, dict):
        return [payload]
    if not isinstance(payload, list):
        raise BackendError("Backend returned an unexpected payload.")
    return payload


def _describe(response: httpx.Response) -> str:
    detail: Optional[str] = None
    try:
        data = response.json()
        if isinstance(data, dict):
            detail = data.get("message") or data.get("details")
    except ValueError:
        detail = response.text.strip()
    return f"Backend responded with status {response.status_code}: {detail or 'no detail provided.'}"
