import json

import pytest
from click.testing import CliRunner

from conftest import StubFetcher
from downloadcache import cli, downloader
from downloadcache.keys import derive_key

HELLO = b"hello world!"


@pytest.fixture
def origin(monkeypatch):
    fetcher = StubFetcher({"a": HELLO})
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(downloader, "create_fetcher", lambda *args, **kwargs: fetcher)
    return fetcher


def test_key_prints_entry_name(origin, tmp_path):
    result = CliRunner().invoke(cli.main, ["--cache-dir", str(tmp_path), "key", "a"])
    assert result.exit_code == 0
    assert result.output.strip() == derive_key("a")


def test_fetch_to_file_then_from_cache(origin, tmp_path):
    runner = CliRunner()
    out = tmp_path / "out.bin"
    args = ["--cache-dir", str(tmp_path / "cache"), "fetch", "a", "--out", str(out)]

    first = runner.invoke(cli.main, args)
    assert first.exit_code == 0, first.output
    assert json.loads(first.output)["from_cache"] is False
    assert out.read_bytes() == HELLO

    second = runner.invoke(cli.main, args)
    assert json.loads(second.output)["from_cache"] is True
    assert json.loads(second.output)["bytes_written"] == 12
    assert origin.calls == ["a"]


def test_fetch_to_stdout(origin, tmp_path):
    result = CliRunner().invoke(cli.main, ["--cache-dir", str(tmp_path), "fetch", "a"])
    assert result.exit_code == 0
    assert result.stdout_bytes == HELLO


def test_fetch_failure_exits_non_zero(monkeypatch, tmp_path):
    from downloadcache.errors import FetchError

    fetcher = StubFetcher({"b": FetchError("b", status=404)})
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(downloader, "create_fetcher", lambda *args, **kwargs: fetcher)
    result = CliRunner().invoke(cli.main, ["--cache-dir", str(tmp_path), "fetch", "b"])
    assert result.exit_code == 1
    assert "404" in result.output


def test_clear_reports_removal(origin, tmp_path):
    runner = CliRunner()
    base = ["--cache-dir", str(tmp_path)]
    assert json.loads(runner.invoke(cli.main, base + ["clear", "a"]).output)["removed"] is False
    runner.invoke(cli.main, base + ["fetch", "a", "--out", str(tmp_path / "out.bin")])
    payload = json.loads(runner.invoke(cli.main, base + ["clear", "a"]).output)
    assert payload == {"identifier": "a", "key": derive_key("a"), "removed": True}


def test_invalid_option_is_reported(origin, tmp_path):
    result = CliRunner().invoke(cli.main, ["--cache-dir", str(tmp_path), "--timeout", "0", "key", "a"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
