import os
from pathlib import Path

"""Global constants and configuration path definitions for commit-reput.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the fixed git conventions used by the sync agent.
"""

# --- Identity ---
APP_NAME = "commit-reput"
"""str: The human-readable application name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "commit-reput"
"""Path: The directory for runtime state data (logs, pid file)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

PID_FILE = STATE_DIR / "daemon.pid"
"""Path: The file path storing the daemon's process ID."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/commit-reput"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

# --- Git / Logic Constants ---
REMOTE_NAME = "origin"
"""str: The single remote registered on a freshly created repository."""

DEFAULT_REMOTE_HOST = "github.com"
"""str: The SSH host the remote identifier is resolved against."""

SSH_USER = "git"
"""str: The fixed SSH principal used for every pull and push."""

SPARSE_PATTERN = "/*"
"""str: The match-everything sparse-checkout pattern."""

COMMIT_MESSAGE = "New content from commit-reput - {timestamp}"
"""str: Template for automated commit messages."""

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
"""str: Local-time format embedded in commit messages."""
