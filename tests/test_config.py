from __future__ import annotations

from importlib import import_module
from pathlib import Path

import pytest


@pytest.fixture(scope="module")
def config_module():
    try:
        return import_module("rto_import.config")
    except ModuleNotFoundError as exc:
        pytest.skip(f"Missing config module: {exc}")


def test_defaults(config_module, monkeypatch) -> None:
    for name in ("RTO_IMPORT_DB_PATH", "RTO_IMPORT_BATCH_SIZE", "RTO_IMPORT_NAME_POLICY", "ALLOWED_ORIGINS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    settings = config_module.Settings.from_env()
    assert settings.db_path == Path("data/rto_import.db")
    assert settings.batch_size == 500
    assert settings.name_policy == "overwrite"
    assert settings.allowed_origins == ["*"]
    assert settings.log_level == "INFO"


def test_environment_overrides(config_module, monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("RTO_IMPORT_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.setenv("RTO_IMPORT_BATCH_SIZE", "100")
    monkeypatch.setenv("RTO_IMPORT_NAME_POLICY", "Fill_Blank")
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://localhost:5173, https://app.example")
    settings = config_module.Settings.from_env()
    assert settings.db_path == tmp_path / "x.db"
    assert settings.batch_size == 100
    assert settings.name_policy == "fill_blank"
    assert settings.allowed_origins == ["http://localhost:5173", "https://app.example"]


@pytest.mark.parametrize("raw", ["abc", "0", "-5"])
def test_bad_batch_size_falls_back(config_module, monkeypatch, raw) -> None:
    monkeypatch.setenv("RTO_IMPORT_BATCH_SIZE", raw)
    assert config_module.Settings.from_env().batch_size == 500


def test_unknown_policy_rejected(config_module, monkeypatch) -> None:
    monkeypatch.setenv("RTO_IMPORT_NAME_POLICY", "sometimes")
    with pytest.raises(ValueError):
        config_module.Settings.from_env()


def test_configure_logging_is_idempotent(config_module) -> None:
    logger = config_module.configure_logging("debug")
    logger = config_module.configure_logging("debug")
    assert logger.name == "rto_import"
    assert len(logger.handlers) == 1
    assert logger.level == 10
