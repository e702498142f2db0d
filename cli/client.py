from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the SensorHub service."""

    def __init__(self, config: CLIConfig, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._config = config
        self._client = httpx.Client(
            base_url=config.base_url, timeout=config.timeout, transport=transport
        )

    def close(self) -> None:
        self._client.close()

    def submit_reading(self, api_key: str, password: str, data: Mapping[str, float]) -> str:
        try:
            response = self._client.post(
                "/api/sensor",
                json={"api_key": api_key, "password": password, "data": dict(data)},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            self._handle_transport_error(exc)
        payload = response.json()
        message = payload.get("message")
        if not isinstance(message, str):
            raise typer.BadParameter("Unexpected response payload when submitting a reading.")
        return message

    def public_readings(self, sensor_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"limit": limit} if limit is not None else None
        try:
            response = self._client.get(f"/public-sensors/{sensor_id}/readings", params=params)
            if response.status_code == 404:
                raise typer.BadParameter(f"Sensor {sensor_id} was not found or is not public.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            self._handle_transport_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("error") or data.get("detail")
            if data.get("details"):
                fields = ", ".join(item.get("field", "?") for item in data["details"])
                detail = f"{detail} ({fields})"
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    @staticmethod
    def _handle_transport_error(exc: httpx.HTTPError) -> None:
        typer.secho(f"Could not reach the service: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
