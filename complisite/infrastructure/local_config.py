from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass, replace
from pathlib import Path

from complisite.bootstrap.settings import resolve_appdata_dir

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 15.0
DEFAULT_PERIODIC_WAKE_SECONDS = 300.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class SyncConfig:
    api_base_url: str
    api_token: str = ""
    device_id: str = ""
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    periodic_wake_seconds: float = DEFAULT_PERIODIC_WAKE_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS


def _float_or_default(value: object, default: float) -> float:
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


class SyncConfigStore:
    """Persiste la configuración de sincronización en ``config.json``.

    ``COMPLISITE_API_URL`` y ``COMPLISITE_API_TOKEN`` tienen prioridad sobre
    el fichero para despliegues sin interfaz.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or resolve_appdata_dir()
        self._config_path = self._base_dir / "config.json"

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> SyncConfig | None:
        payload: dict[str, object] = {}
        if self._config_path.exists():
            try:
                payload = json.loads(self._config_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.exception("No se pudo leer config.json: %s", exc)
                payload = {}

        device_id = str(payload.get("device_id", "")).strip()
        if not device_id and self._config_path.exists():
            device_id = self._generate_device_id()
            payload["device_id"] = device_id
            self._write_payload(payload)

        base_url = os.environ.get("COMPLISITE_API_URL") or str(payload.get("api_base_url", "")).strip()
        if not base_url:
            return None
        token = os.environ.get("COMPLISITE_API_TOKEN") or str(payload.get("api_token", "")).strip()
        return SyncConfig(
            api_base_url=base_url,
            api_token=token,
            device_id=device_id,
            poll_interval_seconds=_float_or_default(payload.get("poll_interval_seconds"), DEFAULT_POLL_INTERVAL_SECONDS),
            periodic_wake_seconds=_float_or_default(payload.get("periodic_wake_seconds"), DEFAULT_PERIODIC_WAKE_SECONDS),
            request_timeout_seconds=_float_or_default(
                payload.get("request_timeout_seconds"), DEFAULT_REQUEST_TIMEOUT_SECONDS
            ),
        )

    def save(self, config: SyncConfig) -> SyncConfig:
        saved = replace(config, device_id=config.device_id or self._generate_device_id())
        self._write_payload(
            {
                "api_base_url": saved.api_base_url,
                "api_token": saved.api_token,
                "device_id": saved.device_id,
                "poll_interval_seconds": saved.poll_interval_seconds,
                "periodic_wake_seconds": saved.periodic_wake_seconds,
                "request_timeout_seconds": saved.request_timeout_seconds,
            }
        )
        return saved

    def _write_payload(self, payload: dict[str, object]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def _generate_device_id() -> str:
        return str(uuid.uuid4())
