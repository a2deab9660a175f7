import datetime
import logging
import random
import threading
from collections.abc import Callable
from pathlib import Path

from .batcher import CommitBatcher, SyncAttemptResult
from .constants import APP_NAME, COMMIT_MESSAGE, DEFAULT_REMOTE_HOST, TIMESTAMP_FORMAT
from .exceptions import GitError, NotInitializedError
from .lifecycle import PullResult, RepositoryLifecycle
from .sparse import LocalRepoConfigurator

logger = logging.getLogger(APP_NAME)


def format_commit_message(when: datetime.datetime) -> str:
    """Renders the automated commit message for a local timestamp.

    Args:
        when (datetime.datetime): The commit time.

    Returns:
        str: e.g. 'New content from commit-reput - 2024-05-01 12:30:00'.
    """
    return COMMIT_MESSAGE.format(timestamp=when.strftime(TIMESTAMP_FORMAT))


class SyncWorkflow:
    """The externally callable sync lifecycle for one repository and one remote.

    `init_repo` must succeed once before `commit_and_push_repo` is called. All
    state (repository handle, credential, batch counters) lives on the instance.
    A single lock makes each call atomic with respect to concurrent callers.
    """

    def __init__(
        self,
        host: str = DEFAULT_REMOTE_HOST,
        initial_branch: str = "main",
        network_timeout: float | None = None,
        rng: random.Random | None = None,
        configurator: LocalRepoConfigurator | None = None,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
        key_dir: Path | None = None,
    ):
        self.host = host
        self.initial_branch = initial_branch
        self.network_timeout = network_timeout
        self.rng = rng
        self.configurator = configurator
        self.clock = clock
        self.key_dir = key_dir

        self.lifecycle: RepositoryLifecycle | None = None
        self.batcher: CommitBatcher | None = None
        self._lock = threading.Lock()

    def init_repo(
        self,
        path: Path,
        remote_identifier: str,
        key: bytes,
        threshold_min: int,
        threshold_max: int,
    ) -> PullResult:
        """Creates or opens the repository, provisions the key and pulls.

        Args:
            path (Path): The local directory to keep in sync.
            remote_identifier (str): The remote repository, e.g. 'owner/name'.
            key (bytes): The SSH private key.
            threshold_min (int): Inclusive lower bound of the commit threshold.
            threshold_max (int): Inclusive upper bound of the commit threshold.

        Returns:
            PullResult: How the initial, best-effort pull went.

        Raises:
            RepositoryError: If the repository cannot be created/opened or wired.
            AuthError: If the key is unusable.
        """
        with self._lock:
            lifecycle = RepositoryLifecycle(
                Path(path),
                remote_identifier,
                self.host,
                initial_branch=self.initial_branch,
                network_timeout=self.network_timeout,
                configurator=self.configurator,
                key_dir=self.key_dir,
            )
            batcher = CommitBatcher(threshold_min, threshold_max, rng=self.rng)
            result = lifecycle.initialize(key)

            if self.lifecycle is not None:
                self.lifecycle.close()
            self.lifecycle = lifecycle
            self.batcher = batcher
            return result

    def commit_and_push_repo(self, username: str, email: str) -> SyncAttemptResult:
        """Runs one sync invocation.

        Args:
            username (str): Author name for a commit made by this invocation.
            email (str): Author email for a commit made by this invocation.

        Returns:
            SyncAttemptResult: CLEAN, DEFERRED or COMMITTED (committed and pushed).

        Raises:
            NotInitializedError: If `init_repo` has not succeeded.
            GitError: If reading status, staging, committing or pushing fails. The
                      batch state is left untouched so the next call retries.
        """
        with self._lock:
            if self.lifecycle is None or self.batcher is None:
                raise NotInitializedError(
                    "Sync workflow not initialised - call init_repo() first"
                )
            lifecycle, batcher = self.lifecycle, self.batcher

            try:
                changes = lifecycle.status()
            except GitError as e:
                logger.error(f"Error retrieving status from working tree: {e}")
                raise

            decision = batcher.decide(not changes)
            if decision is not SyncAttemptResult.COMMITTED:
                return decision

            now = self.clock()
            try:
                lifecycle.stage_all()
            except GitError as e:
                logger.error(f"Error adding new files to the staging area: {e}")
                raise
            try:
                lifecycle.commit(format_commit_message(now), username, email, now)
            except GitError as e:
                logger.error(f"Error committing the staging area: {e}")
                raise
            try:
                lifecycle.push()
            except GitError as e:
                logger.error(f"Error pushing the repository: {e}")
                raise

            logger.info(
                f"Successfully pushed {len(changes)} files to the repository "
                f"after {batcher.state.pending_count} deferred runs"
            )
            batcher.record_success()
            return decision

    def close(self) -> None:
        """Releases the credential held by the current repository."""
        with self._lock:
            if self.lifecycle is not None:
                self.lifecycle.close()
