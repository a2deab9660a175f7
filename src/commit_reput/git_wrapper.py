import logging
import re
import subprocess
from pathlib import Path

from .constants import APP_NAME
from .exceptions import GitError

logger = logging.getLogger(APP_NAME)

_SYMREF_RE = re.compile(r"^ref:\s+refs/heads/(\S+)\s+HEAD$")


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class provides methods to execute the Git operations the sync agent needs
    using `subprocess`, abstracting away the command construction and output
    handling. Network operations accept a timeout so callers can impose a deadline.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @classmethod
    def init(cls, path: Path, initial_branch: str = "main") -> "GitRepo":
        """Creates a new repository at `path` and returns a wrapper for it.

        Args:
            path (Path): The directory to initialize. Created if missing.
            initial_branch (str, optional): Name of the unborn first branch.
                                            Defaults to "main".

        Returns:
            GitRepo: The wrapper for the freshly created repository.

        Raises:
            GitError: If `git init` fails.
        """
        path.mkdir(parents=True, exist_ok=True)
        try:
            subprocess.run(
                ["git", "init", "-b", initial_branch],
                cwd=path,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise GitError(f"Git error: {e.stderr or e}") from e
        except OSError as e:
            raise GitError(f"Could not run git: {e}") from e
        return cls(path)

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        env: dict | None = None,
        timeout: float | None = None,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Used to carry SSH and
                                            author settings. Defaults to None.
            timeout (Optional[float], optional): Seconds before the command is
                                                 killed. Defaults to None (no limit).

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            GitError: If the git command returns a non-zero exit code, cannot be
                      started, or exceeds the timeout.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
                env=env,
                timeout=timeout,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            raise GitError(f"Git error: {e.stderr or e}") from e
        except subprocess.TimeoutExpired as e:
            raise GitError(f"Git timed out after {timeout}s: git {args[0]}") from e
        except OSError as e:
            raise GitError(f"Could not run git: {e}") from e

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The name of the current branch (also valid while unborn).
        """
        return self._run(["branch", "--show-current"])

    def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status of the repository.

        Returns:
            list[str]: A list of status lines returned by `git status --porcelain`.
                       An empty list means the working tree is clean.
        """
        output = self._run(["status", "--porcelain"])
        return output.splitlines() if output else []

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "--all", "."], capture=False)

    def commit(self, message: str, env: dict | None = None) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
            env (Optional[dict], optional): Environment carrying author and
                                            committer identity. Defaults to None.
        """
        self._run(["commit", "--no-verify", "-m", message], capture=False, env=env)

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, relative ref) to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD', 'master').

        Returns:
            Optional[str]:  The full SHA-1 hash,
                            or None if the revision could not be resolved.
        """
        try:
            return self._run(["rev-parse", "--verify", "--quiet", rev])
        except GitError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def symbolic_ref(self, name: str, target: str) -> None:
        """Points a symbolic reference (usually HEAD) at another reference.

        Args:
            name (str): The symbolic ref to update, e.g. 'HEAD'.
            target (str): The reference it should point at, e.g. 'refs/heads/main'.
        """
        self._run(["symbolic-ref", name, target])

    def config_set(self, key: str, value: str) -> None:
        """Writes a key into the repository-local git configuration.

        Args:
            key (str): The dotted configuration key.
            value (str): The value to store.
        """
        self._run(["config", "--local", key, value])

    def remote_url(self, name: str) -> str | None:
        """Returns the URL of a registered remote.

        Args:
            name (str): The remote name.

        Returns:
            str | None: The configured URL, or None if the remote does not exist.
        """
        try:
            return self._run(["remote", "get-url", name]) or None
        except GitError:
            return None

    def add_remote(self, name: str, url: str) -> None:
        """Registers a new remote.

        Args:
            name (str): The remote name.
            url (str): The fetch and push URL.
        """
        self._run(["remote", "add", name, url])

    def remote_default_branch(
        self, remote: str, env: dict | None = None, timeout: float | None = None
    ) -> str | None:
        """Asks the remote which branch its HEAD points to.

        Args:
            remote (str): The remote name.
            env (Optional[dict], optional): Environment carrying SSH settings.
            timeout (Optional[float], optional): Network deadline in seconds.

        Returns:
            str | None: The default branch name, or None if the remote has no
                        HEAD (an empty repository).
        """
        output = self._run(
            ["ls-remote", "--symref", remote, "HEAD"], env=env, timeout=timeout
        )
        for line in output.splitlines():
            if match := _SYMREF_RE.match(line.strip()):
                return match.group(1)
        return None

    def pull(
        self,
        remote: str,
        branch: str,
        env: dict | None = None,
        timeout: float | None = None,
    ) -> None:
        """Fetches `branch` from `remote` and merges it into the current branch.

        Args:
            remote (str): The remote name.
            branch (str): The remote branch to merge.
            env (Optional[dict], optional): Environment carrying SSH settings.
            timeout (Optional[float], optional): Network deadline in seconds.
        """
        self._run(
            ["pull", "--no-rebase", "--no-edit", remote, branch],
            env=env,
            timeout=timeout,
        )

    def push(
        self,
        remote: str,
        refspec: str = "HEAD",
        env: dict | None = None,
        timeout: float | None = None,
    ) -> None:
        """Pushes a refspec to the remote.

        Args:
            remote (str): The remote name.
            refspec (str, optional): What to push. Defaults to "HEAD", the current
                                     branch under its own name.
            env (Optional[dict], optional): Environment carrying SSH settings.
            timeout (Optional[float], optional): Network deadline in seconds.
        """
        # capture=True suppresses verbose "Enumerating objects..." output.
        self._run(["push", remote, refspec], env=env, timeout=timeout)
