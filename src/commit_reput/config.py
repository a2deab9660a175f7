import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_REMOTE_HOST,
)
from .exceptions import ConfigError

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


@dataclass
class RepoConfig:
    """Local repository and remote settings.

    Attributes:
        path (str): The local directory kept in sync.
        remote (str): The remote identifier, e.g. 'owner/name'.
        host (str): The SSH host serving the remote.
        key_file (str): Path to the SSH private key used for pull and push.
        initial_branch (str): Branch name used when creating a new repository.
    """

    path: str = ""
    remote: str = ""
    host: str = DEFAULT_REMOTE_HOST
    key_file: str = ""
    initial_branch: str = "main"


@dataclass
class CommitConfig:
    """Commit batching and authorship settings.

    Attributes:
        threshold_min (int): Lower bound of the deferred-invocation allowance.
        threshold_max (int): Upper bound of the deferred-invocation allowance.
        username (str): Author name recorded on automated commits.
        email (str): Author email recorded on automated commits.
    """

    threshold_min: int = 3
    threshold_max: int = 10
    username: str = ""
    email: str = ""


@dataclass
class DaemonConfig:
    """Daemon operational settings.

    Attributes:
        interval (int): Seconds between sync invocations.
        network_timeout (int): Deadline in seconds for pull, push and ls-remote.
    """

    interval: int = 60
    network_timeout: int = 120


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


REQUIRED_KEYS = [
    ("repo", "path"),
    ("repo", "remote"),
    ("repo", "key_file"),
    ("commit", "username"),
    ("commit", "email"),
]


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        repo (RepoConfig): Repository settings.
        commit (CommitConfig): Batching and authorship settings.
        daemon (DaemonConfig): Daemon behavior settings.
        limits (LimitsConfig): Resource limits.
    """

    repo: RepoConfig = field(default_factory=RepoConfig)
    commit: CommitConfig = field(default_factory=CommitConfig)
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from defaults and a TOML file.

        Args:
            path (Path | None): An explicit config file. Defaults to the global
                                CONFIG_FILE.

        Returns:
            Config: The fully merged configuration object.
        """
        instance = cls()
        source = path or CONFIG_FILE
        if source.exists():
            instance._merge_from_file(source)
        elif path is not None:
            logger.warning(f"Config file {path} not found. Using defaults.")
        return instance

    def validate(self) -> None:
        """Ensures every setting the sync agent cannot default is present.

        Raises:
            ConfigError: If any required key is empty, the threshold range is
                         inverted or the interval is not positive.
        """
        missing = [
            f"{section}.{key}"
            for section, key in REQUIRED_KEYS
            if not getattr(getattr(self, section), key)
        ]
        if missing:
            raise ConfigError(f"Missing required config keys: {', '.join(missing)}")
        if self.commit.threshold_min > self.commit.threshold_max:
            raise ConfigError(
                f"commit.threshold_min ({self.commit.threshold_min}) exceeds "
                f"commit.threshold_max ({self.commit.threshold_max})"
            )
        if self.daemon.interval <= 0:
            raise ConfigError(
                f"daemon.interval must be positive, got {self.daemon.interval}"
            )

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if not data:
                return

            if "repo" in data:
                self.repo = self._update_dataclass("repo", self.repo, data["repo"])
            if "commit" in data:
                self.commit = self._update_dataclass(
                    "commit", self.commit, data["commit"]
                )
            if "daemon" in data:
                self.daemon = self._update_dataclass(
                    "daemon", self.daemon, data["daemon"]
                )
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "interval":
                    seconds = parse_time(v)
                    if seconds <= 0:
                        raise ValueError(f"Expected a positive duration, got {v!r}")
                    filtered_updates[k] = seconds
                elif k == "network_timeout":
                    filtered_updates[k] = parse_time(v)
                elif k in ["threshold_min", "threshold_max"]:
                    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
                        raise ValueError(f"Expected a non-negative integer, got {v!r}")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
