import builtins
import logging
import os

import pytest
from pydantic import ValidationError

import recipe_share.config as config
from recipe_share.config import Settings

from _helpers import TEST_SECRET, make_fake_open


@pytest.fixture(autouse=True)
def _no_secret_files(monkeypatch):
    monkeypatch.setattr(os.path, "isfile", lambda p: False)
    for name in ("JWT_SECRET", "DATABASE_URL", "STORAGE_BACKEND", "TOKEN_EXPIRY", "PORT"):
        monkeypatch.delenv(name, raising=False)


def test_missing_jwt_secret_raises():
    with pytest.raises(ValidationError) as exc:
        Settings(storage_backend="memory")
    assert "jwt_secret must be set" in str(exc.value)


def test_blank_jwt_secret_raises():
    with pytest.raises(ValidationError):
        Settings(storage_backend="memory", jwt_secret="   ")


def test_sql_backend_requires_database_url():
    with pytest.raises(ValidationError) as exc:
        Settings(jwt_secret=TEST_SECRET)
    assert "database_url must be set" in str(exc.value)


def test_memory_backend_needs_no_database_url():
    s = Settings(jwt_secret=TEST_SECRET, storage_backend="memory")
    assert s.database_url is None
    assert s.storage_backend == "memory"


def test_storage_backend_is_normalized():
    s = Settings(jwt_secret=TEST_SECRET, storage_backend="  MEMORY ")
    assert s.storage_backend == "memory"


def test_unknown_storage_backend_rejected():
    with pytest.raises(ValidationError):
        Settings(jwt_secret=TEST_SECRET, storage_backend="mongo")


def test_token_expiry_default_is_a_day():
    s = Settings(jwt_secret=TEST_SECRET, storage_backend="memory")
    assert s.token_expiry == "24h"
    assert s.token_expiry_seconds == 86400


def test_token_expiry_parses_valid_string():
    s = Settings(jwt_secret=TEST_SECRET, storage_backend="memory", token_expiry="15m")
    assert s.token_expiry_seconds == 900


@pytest.mark.parametrize("value", ["", "   ", None, "0s", "-5m", "5w"])
def test_token_expiry_rejects_bad_values(value):
    with pytest.raises(ValidationError):
        Settings(jwt_secret=TEST_SECRET, storage_backend="memory", token_expiry=value)


@pytest.mark.parametrize("port", [0, 65536, -1])
def test_port_out_of_range_rejected(port):
    with pytest.raises(ValidationError):
        Settings(jwt_secret=TEST_SECRET, storage_backend="memory", port=port)


def test_port_string_is_int():
    s = Settings(jwt_secret=TEST_SECRET, storage_backend="memory", port="8080")
    assert s.port == 8080


def test_cors_origin_list_splits_and_strips():
    s = Settings(jwt_secret=TEST_SECRET, storage_backend="memory", cors_origins="http://a.test, http://b.test ,")
    assert s.cors_origin_list == ["http://a.test", "http://b.test"]


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "env-secret")
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("TOKEN_EXPIRY", "2h")
    s = Settings()
    assert s.jwt_secret == "env-secret"
    assert s.token_expiry_seconds == 7200


def test_jwt_secret_prefers_secret_over_env(monkeypatch):
    secret_path = "/run/secrets/JWT_SECRET"
    monkeypatch.setattr(os.path, "isfile", lambda p: os.path.normpath(p) == os.path.normpath(secret_path))
    monkeypatch.setattr(builtins, "open", make_fake_open(secret_path, "file-secret\n"))

    s = Settings(jwt_secret="env-secret", storage_backend="memory")
    assert s.jwt_secret == "file-secret"


def test_load_settings_exits_on_validation_error(monkeypatch, caplog):
    monkeypatch.setenv("STORAGE_BACKEND", "memory")

    caplog.set_level(logging.ERROR)
    with pytest.raises(SystemExit):
        config.load_settings()
    assert any('Configuration error' in r.message for r in caplog.records)


def test_load_settings_returns_settings(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "env-secret")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./data/recipes.db")
    s = config.load_settings()
    assert s.storage_backend == "sql"
    assert s.database_url == "sqlite:///./data/recipes.db"
