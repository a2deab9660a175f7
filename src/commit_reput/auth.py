import base64
import hashlib
import io
import logging
import os
import shlex
import tempfile
from dataclasses import dataclass
from pathlib import Path

import paramiko

from .constants import APP_NAME, SSH_USER
from .exceptions import AuthError

logger = logging.getLogger(APP_NAME)

# Key formats accepted for the SSH identity, tried in order.
KEY_TYPES: list[type[paramiko.PKey]] = [
    paramiko.Ed25519Key,
    paramiko.ECDSAKey,
    paramiko.RSAKey,
]

ACCEPT_ANY_HOST_KEY = "accept-any"


@dataclass(frozen=True)
class SshCredential:
    """A reusable SSH identity for pull and push operations.

    The host key of the remote is never verified: the agent talks to a single,
    fixed remote and does not manage a known-hosts file.

    Attributes:
        username (str): The SSH principal, always "git".
        key_path (Path): A 0600 file holding the private key for OpenSSH.
        key_type (str): The SSH key algorithm (e.g. 'ssh-ed25519').
        fingerprint (str): The SHA256 fingerprint of the public half.
        host_key_policy (str): Host key verification policy.
    """

    username: str
    key_path: Path
    key_type: str
    fingerprint: str
    host_key_policy: str = ACCEPT_ANY_HOST_KEY

    def ssh_command(self) -> str:
        """Builds the OpenSSH invocation git should use for the transport.

        Returns:
            str: A value suitable for GIT_SSH_COMMAND.
        """
        parts = [
            "ssh",
            "-i",
            shlex.quote(str(self.key_path)),
            "-l",
            self.username,
            "-o",
            "IdentitiesOnly=yes",
            "-o",
            "BatchMode=yes",
        ]
        if self.host_key_policy == ACCEPT_ANY_HOST_KEY:
            parts += [
                "-o",
                "StrictHostKeyChecking=no",
                "-o",
                "UserKnownHostsFile=/dev/null",
                "-o",
                "LogLevel=ERROR",
            ]
        return " ".join(parts)

    def git_env(self, base: dict[str, str] | None = None) -> dict[str, str]:
        """Returns a subprocess environment that authenticates git with this key.

        Args:
            base (dict[str, str] | None): Environment to extend. Defaults to a
                                          copy of os.environ.

        Returns:
            dict[str, str]: The environment with GIT_SSH_COMMAND set.
        """
        env = dict(os.environ if base is None else base)
        env["GIT_SSH_COMMAND"] = self.ssh_command()
        env["GIT_TERMINAL_PROMPT"] = "0"
        return env

    def close(self) -> None:
        """Removes the materialized key file."""
        try:
            self.key_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove key file {self.key_path}: {e}")


def _load_private_key(key: bytes) -> paramiko.PKey:
    """Parses raw private key bytes with the first key type that accepts them.

    Raises:
        AuthError: If no supported key type can parse the bytes.
    """
    try:
        text = key.decode("utf-8")
    except UnicodeDecodeError as e:
        raise AuthError("Private key is not valid text") from e

    errors = []
    for key_cls in KEY_TYPES:
        try:
            return key_cls.from_private_key(io.StringIO(text))
        except paramiko.PasswordRequiredException as e:
            raise AuthError("Encrypted private keys are not supported") from e
        except (paramiko.SSHException, ValueError, IndexError) as e:
            errors.append(f"{key_cls.__name__}: {e}")
    raise AuthError(f"Unsupported or malformed private key ({'; '.join(errors)})")


def _fingerprint(pkey: paramiko.PKey) -> str:
    digest = hashlib.sha256(pkey.asbytes()).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def generate_credential(key: bytes, key_dir: Path | None = None) -> SshCredential:
    """Turns a private key byte sequence into a credential bound to user "git".

    Args:
        key (bytes): The private key in OpenSSH or PEM format.
        key_dir (Path | None): Directory for the materialized key file. Defaults
                               to the system temporary directory.

    Returns:
        SshCredential: The credential shared by every pull and push.

    Raises:
        AuthError: If the key is malformed, encrypted, of an unsupported type,
                   or cannot be written out.
    """
    pkey = _load_private_key(key)

    try:
        # mkstemp creates the file with mode 0600.
        fd, name = tempfile.mkstemp(prefix=f"{APP_NAME}-", suffix=".key", dir=key_dir)
        with os.fdopen(fd, "wb") as f:
            f.write(key if key.endswith(b"\n") else key + b"\n")
    except OSError as e:
        raise AuthError(f"Could not store private key: {e}") from e

    credential = SshCredential(
        username=SSH_USER,
        key_path=Path(name),
        key_type=pkey.get_name(),
        fingerprint=_fingerprint(pkey),
    )
    logger.info(
        f"Loaded {credential.key_type} key {credential.fingerprint} "
        f"for user '{credential.username}'."
    )
    return credential
