from pathlib import Path

import pytest

from downloadcache.config import CacheSettings, load_settings
from downloadcache.errors import ConfigurationError

ENV_KEYS = ["DIR", "PENDING_DIR", "FETCHER", "USER_AGENT", "TIMEOUT", "CHUNK_SIZE", "MAX_BUFFERED", "HASH", "FSYNC", "LOGS_DIR"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # setenv first so teardown also drops anything load_dotenv() put there
    for key in ENV_KEYS:
        monkeypatch.setenv(f"DOWNLOAD_CACHE_{key}", "")
        monkeypatch.delenv(f"DOWNLOAD_CACHE_{key}")
    monkeypatch.chdir(tmp_path)


def test_defaults():
    settings = load_settings()
    assert settings.cache_dir == Path("~/.cache/download-cache").expanduser()
    assert settings.pending_dirname == "pending"
    assert settings.fetcher == "aiohttp"
    assert settings.max_buffered_chunks == 0
    assert settings.hash_algorithm == "md5"
    assert settings.fsync is True
    assert settings.logs_dir is None


def test_environment_overrides_defaults(monkeypatch, tmp_path):
    monkeypatch.setenv("DOWNLOAD_CACHE_DIR", str(tmp_path / "c"))
    monkeypatch.setenv("DOWNLOAD_CACHE_FETCHER", "HTTPX")
    monkeypatch.setenv("DOWNLOAD_CACHE_TIMEOUT", "2.5")
    monkeypatch.setenv("DOWNLOAD_CACHE_FSYNC", "no")
    settings = load_settings()
    assert settings.cache_dir == tmp_path / "c"
    assert settings.fetcher == "httpx"
    assert settings.timeout == 2.5
    assert settings.fsync is False


def test_cli_values_win_over_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DOWNLOAD_CACHE_FETCHER", "httpx")
    settings = load_settings({"fetcher": "requests", "cache_dir": str(tmp_path), "user_agent": None})
    assert settings.fetcher == "requests"
    assert settings.cache_dir == tmp_path


def test_dotenv_file_is_loaded(tmp_path):
    (tmp_path / ".env").write_text("DOWNLOAD_CACHE_MAX_BUFFERED=8\n")
    assert load_settings().max_buffered_chunks == 8


@pytest.mark.parametrize(
    "overrides",
    [
        {"fetcher": "ftp"},
        {"timeout": 0},
        {"hash_algorithm": "not-a-hash"},
        {"pending_dirname": "../elsewhere"},
    ],
)
def test_invalid_values_raise_configuration_error(overrides):
    with pytest.raises(ConfigurationError):
        load_settings(overrides)


def test_settings_model_expands_user_paths():
    settings = CacheSettings(cache_dir=Path("~/x"), logs_dir=Path("~/logs"))
    assert settings.cache_dir == Path("~/x").expanduser()
    assert settings.logs_dir == Path("~/logs").expanduser()
