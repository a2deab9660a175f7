import datetime
import enum
import logging
from pathlib import Path

from .auth import SshCredential, generate_credential
from .constants import APP_NAME, REMOTE_NAME
from .exceptions import AuthError, GitError, NotInitializedError, RepositoryError
from .git_wrapper import GitRepo
from .sparse import LocalRepoConfigurator, SparseCheckoutConfigurator

logger = logging.getLogger(APP_NAME)


class PullResult(enum.Enum):
    """Outcome of the best-effort pull performed at initialization."""

    PULLED = "pulled"
    EMPTY_REMOTE = "empty-remote"
    FAILED = "failed"


def build_remote_url(host: str, remote_identifier: str) -> str:
    """Builds the SSH URL for a remote identifier.

    Args:
        host (str): The SSH host (e.g. 'github.com').
        remote_identifier (str): The repository identifier (e.g. 'owner/name').

    Returns:
        str: A URL of the form git@<host>:<remote_identifier>.git.
    """
    return f"git@{host}:{remote_identifier}.git"


class RepositoryLifecycle:
    """Owns the on-disk repository and the credential used to reach its remote.

    Attributes:
        path (Path): The local directory kept in sync.
        remote_url (str): The SSH URL of the single remote.
        network_timeout (float | None): Deadline for pull, push and ls-remote.
    """

    def __init__(
        self,
        path: Path,
        remote_identifier: str,
        host: str,
        initial_branch: str = "main",
        network_timeout: float | None = None,
        configurator: LocalRepoConfigurator | None = None,
        key_dir: Path | None = None,
    ):
        self.path = path
        self.remote_url = build_remote_url(host, remote_identifier)
        self.initial_branch = initial_branch
        self.network_timeout = network_timeout
        self.configurator = configurator or SparseCheckoutConfigurator()
        self.key_dir = key_dir

        self._repo: GitRepo | None = None
        self._credential: SshCredential | None = None

    @property
    def repo(self) -> GitRepo:
        if self._repo is None:
            raise NotInitializedError(
                "Repository not initialised - call init_repo() first"
            )
        return self._repo

    @property
    def credential(self) -> SshCredential:
        if self._credential is None:
            raise NotInitializedError(
                "Credential not provisioned - call init_repo() first"
            )
        return self._credential

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def _open_or_create(self) -> GitRepo:
        """Opens the repository at `path`, creating and wiring it if absent.

        Raises:
            RepositoryError: If the repository cannot be created, opened or given
                             its remote.
        """
        if (self.path / ".git").exists():
            try:
                repo = GitRepo(self.path)
            except ValueError as e:
                raise RepositoryError(str(e)) from e
            logger.info(f"Opened existing repository at {self.path}")
            self._check_remote(repo)
            return repo

        try:
            repo = GitRepo.init(self.path, self.initial_branch)
        except (GitError, OSError) as e:
            logger.error(f"Error initiating repository at {self.path}: {e}")
            raise RepositoryError(f"Could not create repository: {e}") from e
        logger.info(f"Created repository at {self.path}")

        try:
            repo.add_remote(REMOTE_NAME, self.remote_url)
        except GitError as e:
            logger.error(f"Error creating remote repository config: {e}")
            raise RepositoryError(f"Could not register remote: {e}") from e
        return repo

    def _check_remote(self, repo: GitRepo) -> None:
        """Warns when an existing repository points somewhere unexpected."""
        current = repo.remote_url(REMOTE_NAME)
        if current is None:
            logger.warning(
                f"Repository at {self.path} has no '{REMOTE_NAME}' remote; "
                "pull and push will fail."
            )
        elif current != self.remote_url:
            logger.warning(
                f"Remote '{REMOTE_NAME}' is {current}, expected {self.remote_url}. "
                "Keeping the existing remote."
            )

    def initialize(self, key: bytes) -> PullResult:
        """Creates or opens the repository, provisions credentials and pulls.

        Args:
            key (bytes): The SSH private key for the remote.

        Returns:
            PullResult: The outcome of the best-effort pull.

        Raises:
            RepositoryError: If the repository cannot be created/opened or wired.
            AuthError: If the key cannot be turned into a credential.
        """
        repo = self._open_or_create()

        try:
            credential = generate_credential(key, key_dir=self.key_dir)
        except AuthError as e:
            logger.error(f"Error generating key: {e}")
            raise

        self.close()
        self._repo = repo
        self._credential = credential

        self.configurator.apply(repo)
        return self.pull()

    def close(self) -> None:
        """Releases the credential's key file."""
        if self._credential is not None:
            self._credential.close()
            self._credential = None

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------

    def pull(self) -> PullResult:
        """Merges the remote's default branch into the working tree.

        Failures are logged and reported, never raised: the remote may
        legitimately be empty on first use.

        Returns:
            PullResult: PULLED, EMPTY_REMOTE or FAILED.
        """
        repo = self.repo
        env = self.credential.git_env()
        try:
            branch = repo.remote_default_branch(
                REMOTE_NAME, env=env, timeout=self.network_timeout
            )
            if branch is None:
                logger.info(f"Remote {self.remote_url} is empty. Nothing to pull.")
                return PullResult.EMPTY_REMOTE

            # An unborn local branch adopts the remote's default branch name.
            if repo.rev_parse("HEAD") is None and repo.current_branch() != branch:
                repo.symbolic_ref("HEAD", f"refs/heads/{branch}")

            repo.pull(REMOTE_NAME, branch, env=env, timeout=self.network_timeout)
        except GitError as e:
            logger.error(f"Error pulling the repository - Maybe it is empty? {e}")
            return PullResult.FAILED

        logger.info(f"Pulled {branch} from {self.remote_url}")
        return PullResult.PULLED

    def push(self) -> None:
        """Pushes the current branch to the remote under its own name.

        Raises:
            GitError: If the push fails or exceeds the network deadline.
        """
        self.repo.push(
            REMOTE_NAME,
            "HEAD",
            env=self.credential.git_env(),
            timeout=self.network_timeout,
        )

    # ------------------------------------------------------------------
    # Working tree
    # ------------------------------------------------------------------

    def status(self) -> list[str]:
        """Returns the porcelain status lines of the working tree."""
        return self.repo.status_porcelain()

    def stage_all(self) -> None:
        """Stages every change in the working tree, recursively."""
        self.repo.add_all()

    def commit(
        self, message: str, username: str, email: str, when: datetime.datetime
    ) -> None:
        """Commits the staging area with the given identity as author and committer.

        Args:
            message (str): The commit message.
            username (str): Author and committer name.
            email (str): Author and committer email.
            when (datetime.datetime): Author and committer date.
        """
        env = self.credential.git_env()
        stamp = when.astimezone().isoformat()
        env.update(
            {
                "GIT_AUTHOR_NAME": username,
                "GIT_AUTHOR_EMAIL": email,
                "GIT_AUTHOR_DATE": stamp,
                "GIT_COMMITTER_NAME": username,
                "GIT_COMMITTER_EMAIL": email,
                "GIT_COMMITTER_DATE": stamp,
            }
        )
        self.repo.commit(message, env=env)
