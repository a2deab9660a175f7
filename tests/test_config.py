"""Tests for the configuration management subsystem."""

import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from commit_reput.config import Config, parse_size, parse_time
from commit_reput.exceptions import ConfigError

VALID_TOML = (
    "[repo]\n"
    'path = "/srv/notes"\n'
    'remote = "owner/notes"\n'
    'key_file = "~/.ssh/notes_deploy"\n'
    "[commit]\n"
    "threshold_min = 1\n"
    "threshold_max = 4\n"
    'username = "Jane"\n'
    'email = "jane@example.com"\n'
)


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.repo.host == "github.com"
    assert conf.repo.initial_branch == "main"
    assert conf.commit.threshold_min == 3
    assert conf.commit.threshold_max == 10
    assert conf.daemon.interval == 60
    assert conf.daemon.network_timeout == 120
    assert conf.limits.max_log_size == 5 * 1024 * 1024


def test_config_load_from_file(tmp_path: Path) -> None:
    """Verifies that values from the TOML file override the defaults."""
    config_file = tmp_path / "config.toml"
    config_file.write_text(
        VALID_TOML + '[daemon]\ninterval = "5m"\nnetwork_timeout = "30s"\n'
    )

    conf = Config.load(config_file)

    assert conf.repo.path == "/srv/notes"
    assert conf.repo.remote == "owner/notes"
    assert conf.repo.host == "github.com"
    assert conf.commit.threshold_min == 1
    assert conf.commit.threshold_max == 4
    assert conf.commit.username == "Jane"
    assert conf.daemon.interval == 300
    assert conf.daemon.network_timeout == 30
    conf.validate()


def test_config_load_uses_global_file(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that the global CONFIG_FILE is read when no path is given.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    global_config = tmp_path / "config.toml"
    global_config.write_text('[repo]\nhost = "git.example.org"\n')
    mocker.patch("commit_reput.config.CONFIG_FILE", global_config)

    conf = Config.load()

    assert conf.repo.host == "git.example.org"


def test_config_load_missing_explicit_file_warns(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a missing explicit file falls back to defaults with a warning."""
    conf = Config.load(tmp_path / "absent.toml")

    assert conf == Config()
    assert "not found" in caplog.text


def test_config_syntax_error_is_logged(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that malformed TOML is reported and defaults are kept."""
    config_file = tmp_path / "config.toml"
    config_file.write_text("[repo\npath = ")

    conf = Config.load(config_file)

    assert conf == Config()
    assert "Config syntax error" in caplog.text


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760
    assert parse_size("1.5gb") == int(1.5 * 1024**3)

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_time() -> None:
    """Verifies that human-readable times are correctly converted to seconds."""
    assert parse_time(50) == 50
    assert parse_time("30s") == 30
    assert parse_time("10 min") == 600
    assert parse_time("2 hrs") == 7200
    assert parse_time("1.5h") == 5400

    with pytest.raises(ValueError, match=r"Invalid time format '10 lightyears'"):
        parse_time("10 lightyears")


def test_config_invalid_keys_and_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fallback to defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    caplog.set_level(logging.WARNING)

    config_file = tmp_path / "config.toml"
    config_file.write_text(
        "[daemon]\n"
        'interval = "fast"\n'
        'fake_setting = "ignored"\n'
        "[commit]\n"
        "threshold_min = -2\n"
        "threshold_max = true\n"
        "[limits]\n"
        'max_log_size = "10 gallons"\n'
    )

    conf = Config.load(config_file)

    assert conf.daemon.interval == 60
    assert conf.commit.threshold_min == 3
    assert conf.commit.threshold_max == 10
    assert conf.limits.max_log_size == 5242880

    assert "Unknown config keys in [daemon]: fake_setting" in caplog.text
    assert "Config error in [daemon].interval" in caplog.text
    assert "Config error in [commit].threshold_min" in caplog.text
    assert "Config error in [commit].threshold_max" in caplog.text
    assert "Config error in [limits].max_log_size" in caplog.text


def test_validate_reports_missing_keys() -> None:
    """Verifies that validation names every required key left empty."""
    conf = Config()
    conf.repo.path = "/srv/notes"

    with pytest.raises(ConfigError) as excinfo:
        conf.validate()

    message = str(excinfo.value)
    assert "repo.path" not in message
    for key in ("repo.remote", "repo.key_file", "commit.username", "commit.email"):
        assert key in message


def test_validate_rejects_inverted_threshold_range(tmp_path: Path) -> None:
    """Verifies that a minimum above the maximum is refused."""
    config_file = tmp_path / "config.toml"
    config_file.write_text(VALID_TOML.replace("threshold_min = 1", "threshold_min = 9"))

    with pytest.raises(ConfigError, match="threshold_min"):
        Config.load(config_file).validate()


@pytest.mark.parametrize("interval", ["0", '"0s"', "-5"])
def test_config_rejects_non_positive_interval(
    tmp_path: Path, caplog: pytest.LogCaptureFixture, interval: str
) -> None:
    """Verifies that a zero or negative interval keeps the default instead."""
    config_file = tmp_path / "config.toml"
    config_file.write_text(f"[daemon]\ninterval = {interval}\n")

    conf = Config.load(config_file)

    assert conf.daemon.interval == 60
    assert "Config error in [daemon].interval" in caplog.text


def test_validate_rejects_non_positive_interval(tmp_path: Path) -> None:
    """Verifies that an interval set in code to zero is refused before the loop."""
    config_file = tmp_path / "config.toml"
    config_file.write_text(VALID_TOML)
    conf = Config.load(config_file)
    conf.daemon.interval = 0

    with pytest.raises(ConfigError, match="daemon.interval"):
        conf.validate()
