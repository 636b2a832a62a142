from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class RuntimeEnv:
    firebase_api_key: str | None
    firebase_database_url: str | None


@dataclass
class AppConfig:
    backend_name: str
    display_name: str | None
    default_room: str | None
    notifications_enabled: bool
    request_timeout_seconds: float
    reconnect_attempts: int
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        backend_name=str(config.get("Backend", "memory")).strip().lower(),
        display_name=str(config.get("DisplayName", "")).strip() or None,
        default_room=str(config.get("DefaultRoom", "")).strip() or None,
        notifications_enabled=_to_bool(config.get("NotificationsEnabled", True), default=True),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 10)),
        reconnect_attempts=int(config.get("ReconnectAttempts", 5)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        firebase_api_key=os.environ.get("FIREBASE_API_KEY") or None,
        firebase_database_url=os.environ.get("FIREBASE_DATABASE_URL") or None,
    )
