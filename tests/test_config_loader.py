import logging
from pathlib import Path

import pytest

from autozoom.config_loader import ensure_dirs, load_config
from autozoom.logging_setup import LOGGER_NAME, setup_logging

ENV_KEYS = [
    "AUTOZOOM_DB_PATH",
    "HOST_BRIDGE_URL",
    "HOST_BRIDGE_TIMEOUT",
    "LOG_LEVEL",
    "LOG_DIR",
    "LOG_ROTATION_MB",
    "APP_SECRET",
]


def clear_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_load_config_defaults(monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv("APP_SECRET", "ignoriert")
    cfg = load_config(use_env=False)
    assert cfg.storage.db_path == Path("data/autozoom.db")
    assert cfg.host.bridge_url == "http://127.0.0.1:8765"
    assert cfg.host.timeout_sec == 5.0
    assert cfg.logging.level == "INFO"
    assert cfg.service.app_secret == ""


def test_env_overrides(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    monkeypatch.setenv("AUTOZOOM_DB_PATH", str(tmp_path / "z.db"))
    monkeypatch.setenv("HOST_BRIDGE_URL", "http://localhost:9000/")
    monkeypatch.setenv("HOST_BRIDGE_TIMEOUT", "2.5")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("APP_SECRET", " geheim ")
    cfg = load_config(use_env=True)
    assert cfg.storage.db_path == tmp_path / "z.db"
    assert cfg.host.bridge_url == "http://localhost:9000"
    assert cfg.host.timeout_sec == 2.5
    assert cfg.logging.level == "DEBUG"
    assert cfg.service.app_secret == "geheim"


@pytest.mark.parametrize(
    "key,value",
    [
        ("HOST_BRIDGE_URL", "ftp://bridge"),
        ("HOST_BRIDGE_TIMEOUT", "0"),
        ("LOG_ROTATION_MB", "0"),
    ],
)
def test_invalid_values(monkeypatch, key, value):
    clear_env(monkeypatch)
    monkeypatch.setenv(key, value)
    with pytest.raises(ValueError):
        load_config(use_env=True)


def test_setup_logging_writes_file(monkeypatch, tmp_path):
    clear_env(monkeypatch)
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("AUTOZOOM_DB_PATH", str(tmp_path / "data" / "z.db"))
    cfg = load_config(use_env=True)
    ensure_dirs(cfg)
    setup_logging(cfg)
    app_logger = setup_logging(cfg)
    assert len(app_logger.handlers) == 2
    logging.getLogger(f"{LOGGER_NAME}.controller").info("Tab %s: Zoom %.2f -> %.2f", 1, 1.0, 1.25)
    for handler in app_logger.handlers:
        handler.flush()
    assert "Tab 1: Zoom 1.00 -> 1.25" in (tmp_path / "logs" / "autozoom.log").read_text(encoding="utf-8")
    assert (tmp_path / "data").is_dir()
