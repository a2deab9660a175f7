"""Exception hierarchy for commit-reput."""


class SyncError(Exception):
    """Base exception for all commit-reput errors."""


class GitError(SyncError):
    """A git command failed or exceeded its deadline."""


class RepositoryError(SyncError):
    """The local repository could not be created, opened or wired to its remote."""


class AuthError(SyncError):
    """The SSH private key could not be turned into a credential."""


class NotInitializedError(SyncError):
    """An operation was attempted before ``init_repo`` completed."""


class ConfigError(SyncError):
    """Required configuration is missing or unusable."""
