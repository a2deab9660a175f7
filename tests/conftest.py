"""Shared fixtures for commit-reput tests."""

import io
import os
import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import paramiko
import pytest

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git binary not available"
)


@pytest.fixture(scope="session")
def rsa_key_bytes() -> bytes:
    """A freshly generated, unencrypted RSA private key in PEM format."""
    buf = io.StringIO()
    paramiko.RSAKey.generate(2048).write_private_key(buf)
    return buf.getvalue().encode()


@pytest.fixture
def fake_credential() -> MagicMock:
    """A credential stand-in whose environment is the plain process environment."""
    credential = MagicMock()
    credential.git_env.side_effect = lambda base=None: dict(os.environ)
    return credential


def git(path: Path, *args: str) -> str:
    """Runs a git command in `path` and returns its stripped stdout."""
    res = subprocess.run(
        ["git", *args], cwd=path, capture_output=True, text=True, check=True
    )
    return res.stdout.strip()
