"""commit-reput: keep a directory mirrored to a remote git repository.

This package provides the sync workflow (repository lifecycle, SSH credentials,
commit batching), the long-running daemon that drives it on a timer, and a small
command-line interface.
"""

from . import (
    auth,
    batcher,
    cli,
    config,
    constants,
    daemon,
    exceptions,
    git_wrapper,
    lifecycle,
    sparse,
    workflow,
)
from .batcher import BatchState, CommitBatcher, SyncAttemptResult
from .lifecycle import PullResult
from .workflow import SyncWorkflow

__all__ = [
    "BatchState",
    "CommitBatcher",
    "PullResult",
    "SyncAttemptResult",
    "SyncWorkflow",
    "auth",
    "batcher",
    "cli",
    "config",
    "constants",
    "daemon",
    "exceptions",
    "git_wrapper",
    "lifecycle",
    "sparse",
    "workflow",
]
