from pathlib import Path

from tdsp_engine.config import Config
from tdsp_engine.errors import (
    AddressLookupError,
    ErrorKind,
    InvalidZipFormat,
    NetworkError,
    NoMatchFound,
    RequestTimeout,
)
from tdsp_engine.models import NotFound, NotFoundReason


def test_config_defaults():
    cfg = Config()
    assert cfg.request_timeout == 10.0
    assert cfg.default_usage == 1000
    assert cfg.zip_cache_ttl == 1800
    assert cfg.address_cache_ttl == 3600
    assert cfg.enable_dynamic_probe


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("ERCOT_API_URL", "https://esiid.example")
    monkeypatch.delenv("ERCOT_API_KEY", raising=False)
    monkeypatch.setenv("COMPAREPOWER_API_KEY", "cp-key")
    monkeypatch.setenv("TDSP_CACHE_BACKEND", "SQLite")
    monkeypatch.setenv("TDSP_CACHE_DB", "/tmp/x.db")
    monkeypatch.setenv("TDSP_DISABLE_PROBE", "true")
    monkeypatch.setenv("TDSP_PROBE_DELAY", "0.25")

    cfg = Config.from_env()

    assert cfg.esiid_api_url == "https://esiid.example"
    assert cfg.esiid_api_key == "cp-key"
    assert cfg.pricing_api_key == "cp-key"
    assert cfg.cache_backend == "sqlite"
    assert cfg.cache_db == Path("/tmp/x.db")
    assert cfg.enable_dynamic_probe is False
    assert cfg.probe_delay_seconds == 0.25


def test_error_retryability():
    assert NetworkError("x").retryable
    assert RequestTimeout("x").retryable
    assert RequestTimeout("x").kind == ErrorKind.TIMEOUT
    assert isinstance(AddressLookupError("x"), NetworkError)
    assert not AddressLookupError("x", retryable=False).retryable
    assert not NoMatchFound("x").retryable
    assert not InvalidZipFormat("x").retryable


def test_error_to_dict():
    d = InvalidZipFormat("ZIP code must be exactly 5 digits", {"zip_code": "7520"}).to_dict()
    assert d["code"] == "INVALID_ZIP_FORMAT"
    assert d["retryable"] is False
    assert d["context"] == {"zip_code": "7520"}
    assert "5-digit" in d["user_message"]


def test_not_found_messages_differ_by_reason():
    messages = {NotFound("77840", reason).message for reason in NotFoundReason}
    assert len(messages) == len(NotFoundReason)
