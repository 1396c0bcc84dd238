"""Tests for the configuration management subsystem."""

import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_autosync.config import (
    Config,
    ConfigError,
    parse_level,
    parse_size,
    parse_time,
    resolve_log_level,
)


@pytest.fixture(autouse=True)
def no_global_config(tmp_path: Path, mocker: MagicMock) -> None:
    """Points the default global config location at a file that does not exist."""
    mocker.patch("git_autosync.config.CONFIG_FILE", tmp_path / "absent.toml")


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with the documented defaults."""
    conf = Config()
    assert conf.watch.path == "."
    assert conf.watch.device == "my-device"
    assert conf.watch.recursive is False
    assert conf.daemon.debounce == 5.0
    assert conf.log.level == "off"
    assert conf.log.file is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (5, 5.0),
        (2.5, 2.5),
        ("5", 5.0),
        ("5s", 5.0),
        ("10 sec", 10.0),
        ("2m", 120.0),
        ("2mins", 120.0),
        ("1hr", 3600.0),
        ("500ms", 0.5),
    ],
)
def test_parse_time(raw: int | str, expected: float) -> None:
    """Verifies human-readable durations are converted to seconds."""
    assert parse_time(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["soon", "-1", "5 days", ""])
def test_parse_time_rejects_garbage(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_time(raw)


def test_parse_size() -> None:
    assert parse_size("5mb") == 5 * 1024 * 1024
    assert parse_size("1 GB") == 1024**3
    assert parse_size(1234) == 1234
    with pytest.raises(ValueError):
        parse_size("lots")


def test_parse_level() -> None:
    assert parse_level("DEBUG") == "debug"
    assert parse_level("warning") == "warn"
    with pytest.raises(ValueError):
        parse_level("verbose")


@pytest.mark.parametrize(
    ("name", "level"),
    [
        ("debug", logging.DEBUG),
        ("info", logging.INFO),
        ("warn", logging.WARNING),
        ("error", logging.ERROR),
        ("off", logging.CRITICAL),
    ],
)
def test_resolve_log_level(name: str, level: int) -> None:
    """Verifies 'off' still lets fatal messages through."""
    assert resolve_log_level(name) == level


def test_config_load_merges_layers(tmp_path: Path) -> None:
    """Verifies the cascading merge logic (Defaults -> Global -> Local -> Flags).

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    watched = tmp_path / "notes"
    watched.mkdir()

    global_config = tmp_path / "config.toml"
    global_config.write_text(
        f'[watch]\npath = "{watched}"\ndevice = "desktop"\n'
        '[daemon]\ndebounce = "10s"\n'
        '[log]\nlevel = "info"\nmax_size = "1mb"\n'
    )
    (watched / "autosync.toml").write_text(
        '[watch]\ndevice = "laptop"\nrecursive = true\n'
    )

    conf = Config.load(global_config, {"log": {"level": "debug", "file": None}})

    assert conf.watch.path == str(watched)  # Global
    assert conf.watch.device == "laptop"  # Local beats global
    assert conf.watch.recursive is True  # Local
    assert conf.daemon.debounce == 10.0  # Global, parsed
    assert conf.log.max_size == 1024 * 1024  # Global, parsed
    assert conf.log.level == "debug"  # Flags beat everything


def test_config_local_file_follows_path_override(tmp_path: Path) -> None:
    """Verifies the local config is read from the directory given on the command line."""
    (tmp_path / "autosync.toml").write_text('[watch]\ndevice = "from-local"\n')

    conf = Config.load(overrides={"watch": {"path": str(tmp_path)}})

    assert conf.watch.device == "from-local"


def test_config_file_problems_fall_back_to_defaults(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies typos and bad values in config files only produce warnings."""
    config_file = tmp_path / "config.toml"
    config_file.write_text(
        '[watch]\ndevise = "typo"\n[daemon]\ndebounce = "whenever"\n'
    )

    conf = Config.load(config_file)

    assert conf.watch.device == "my-device"
    assert conf.daemon.debounce == 5.0
    assert "Unknown config keys in [watch]: devise" in caplog.text
    assert "Config error in [daemon].debounce" in caplog.text


def test_config_syntax_error_is_logged(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    config_file = tmp_path / "config.toml"
    config_file.write_text("[watch\npath = ")

    conf = Config.load(config_file)

    assert conf == Config()
    assert "Config syntax error" in caplog.text


def test_config_missing_explicit_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Config file not found"):
        Config.load(tmp_path / "nope.toml")


def test_config_invalid_override_raises() -> None:
    """Verifies command-line values are validated strictly."""
    with pytest.raises(ConfigError, match="debounce"):
        Config.load(overrides={"daemon": {"debounce": "quickly"}})


def test_target_resolves_path(tmp_path: Path) -> None:
    conf = Config()
    conf.watch.path = str(tmp_path / "sub" / "..")
    conf.watch.device = "laptop"

    target = conf.target()

    assert target.path == tmp_path.resolve()
    assert target.device == "laptop"
