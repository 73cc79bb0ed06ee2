import dataclasses
import os
from pathlib import Path

from pydantic import BaseModel, field_validator

from autozoom.db import kv_store


class StorageConfig(BaseModel):
    db_path: Path = kv_store.DB_PATH


class HostConfig(BaseModel):
    bridge_url: str = "http://127.0.0.1:8765"
    timeout_sec: float = 5.0

    @field_validator("bridge_url")
    def validate_url(cls, value: str) -> str:
        value = (value or "").strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("HOST_BRIDGE_URL muss mit http:// oder https:// beginnen")
        return value

    @field_validator("timeout_sec")
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("HOST_BRIDGE_TIMEOUT muss positiv sein")
        return value


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: Path = Path("logs")
    rotation_mb: int = 10

    @field_validator("level")
    def validate_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()

    @field_validator("rotation_mb")
    def validate_rotation(cls, value: int) -> int:
        if value < 1:
            raise ValueError("rotation_mb muss positiv sein")
        return value


class ServiceConfig(BaseModel):
    app_secret: str = ""
    host: str = "127.0.0.1"
    port: int = 8010


@dataclasses.dataclass
class CentralConfig:
    storage: StorageConfig
    host: HostConfig
    logging: LoggingConfig
    service: ServiceConfig


def load_config(use_env: bool = True) -> CentralConfig:
    """
    ENV-getriebene Konfiguration. Ohne use_env gelten die Defaults.
    """

    def env(key: str, default: str) -> str:
        if not use_env:
            return default
        return os.getenv(key, default) or default

    storage_cfg = StorageConfig(db_path=Path(env("AUTOZOOM_DB_PATH", str(kv_store.DB_PATH))))
    host_cfg = HostConfig(
        bridge_url=env("HOST_BRIDGE_URL", "http://127.0.0.1:8765"),
        timeout_sec=float(env("HOST_BRIDGE_TIMEOUT", "5")),
    )
    logging_cfg = LoggingConfig(
        level=env("LOG_LEVEL", "INFO"),
        log_dir=Path(env("LOG_DIR", "logs")),
        rotation_mb=int(env("LOG_ROTATION_MB", "10")),
    )
    service_cfg = ServiceConfig(
        app_secret=(os.getenv("APP_SECRET", "") if use_env else "").strip(),
        host=env("AUTOZOOM_HOST", "127.0.0.1"),
        port=int(env("AUTOZOOM_PORT", "8010")),
    )
    return CentralConfig(storage=storage_cfg, host=host_cfg, logging=logging_cfg, service=service_cfg)


def ensure_dirs(config: CentralConfig) -> None:
    config.logging.log_dir.mkdir(parents=True, exist_ok=True)
    config.storage.db_path.parent.mkdir(parents=True, exist_ok=True)
