import logging
from pathlib import Path

from .constants import APP_NAME, SPARSE_PATTERN
from .exceptions import GitError
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


class LocalRepoConfigurator:
    """Base class for one-time local repository configuration steps.

    Implementations must be idempotent and must never raise: configuration is
    a convenience for tooling that inspects the repository, not a correctness
    requirement of the sync.
    """

    def apply(self, repo: GitRepo) -> list[str]:
        """Applies the configuration to `repo`.

        Args:
            repo (GitRepo): The repository to configure.

        Returns:
            list[str]: Names of the steps that failed (empty on full success).
        """
        return []


class NullConfigurator(LocalRepoConfigurator):
    """Leaves the repository configuration untouched."""


class SparseCheckoutConfigurator(LocalRepoConfigurator):
    """Enables sparse checkout with a single match-everything pattern.

    The pattern does not narrow the checkout. It only makes the repository look
    sparse-enabled to tooling that checks for it.
    """

    def __init__(self, pattern: str = SPARSE_PATTERN):
        self.pattern = pattern

    def apply(self, repo: GitRepo) -> list[str]:
        info_dir = repo.path / ".git" / "info"
        failed = []

        try:
            repo.config_set("core.sparsecheckout", "true")
        except GitError as e:
            logger.error(f"Sparse checkout: could not enable config flag: {e}")
            failed.append("config")

        try:
            info_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Sparse checkout: could not create {info_dir}: {e}")
            failed.append("mkdir")

        try:
            sparse_file: Path = info_dir / "sparse-checkout"
            sparse_file.write_text(f"{self.pattern}\n")
        except OSError as e:
            logger.error(f"Sparse checkout: could not write pattern file: {e}")
            failed.append("pattern")

        if not failed:
            logger.debug(f"Sparse checkout configured in {repo.path.name}.")
        return failed
