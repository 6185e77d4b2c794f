"""Environment-driven settings for the bridge host and the tool client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class BridgeConfig:
    host: str = "127.0.0.1"
    data_port: int = 3001
    command_port: int = 3002
    port_attempts: int = 10
    retry_delay: float = 0.1
    client_timeout: float = 5.0
    client_retries: int = 1
    model_path: str | None = None

    @property
    def data_url(self) -> str:
        return f"http://{self.host}:{self.data_port}"

    @property
    def command_url(self) -> str:
        return f"http://{self.host}:{self.command_port}"


def load_config(env_file: Path | None = None) -> BridgeConfig:
    """Read MODEL_BRIDGE_* settings; a .env file never overrides the real environment."""
    _load_env_file(env_file or ROOT / "app" / ".env")
    data_port = _env_int("MODEL_BRIDGE_DATA_PORT", 3001)
    return BridgeConfig(
        host=os.getenv("MODEL_BRIDGE_HOST", "127.0.0.1").strip() or "127.0.0.1",
        data_port=data_port,
        command_port=_env_int("MODEL_BRIDGE_COMMAND_PORT", data_port + 1),
        port_attempts=max(1, _env_int("MODEL_BRIDGE_PORT_ATTEMPTS", 10)),
        retry_delay=max(0, _env_int("MODEL_BRIDGE_RETRY_DELAY_MS", 100)) / 1000.0,
        client_timeout=_env_float("MODEL_BRIDGE_CLIENT_TIMEOUT", 5.0),
        client_retries=max(0, _env_int("MODEL_BRIDGE_CLIENT_RETRIES", 1)),
        model_path=os.getenv("MODEL_BRIDGE_MODEL_PATH") or None,
    )
