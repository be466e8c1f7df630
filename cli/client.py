from __future__ import annotations

from typing import Any, Dict, List

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the ingestion service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def send_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/events", json=event)

    def send_batch(self, events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self._request("POST", "/events/batch", json=events)

    def register_sensor(self, sensor_id: str, patient_id: str) -> Dict[str, Any]:
        return self._request("PUT", f"/sensors/{sensor_id}", json={"patient_id": patient_id})

    def get_sensor(self, sensor_id: str) -> Dict[str, Any]:
        response = self._client.get(f"/sensors/{sensor_id}")
        if response.status_code == 404:
            raise typer.BadParameter(f"Sensor {sensor_id} is not mapped to a patient.")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        if isinstance(detail, dict):
            detail = f"{detail.get('step')}: {detail.get('reason')}"
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
