"""Tests for the init/commit-and-push workflow."""

import dataclasses
import datetime
import random
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from conftest import git, requires_git

from commit_reput.batcher import SyncAttemptResult
from commit_reput.exceptions import GitError, NotInitializedError
from commit_reput.lifecycle import PullResult
from commit_reput.workflow import SyncWorkflow, format_commit_message

CLEAN = SyncAttemptResult.CLEAN
DEFERRED = SyncAttemptResult.DEFERRED
COMMITTED = SyncAttemptResult.COMMITTED

FIXED_NOW = datetime.datetime(2024, 5, 1, 12, 30, 0)


@pytest.fixture
def mock_lifecycle(mocker: MagicMock) -> MagicMock:
    """Patches RepositoryLifecycle in the workflow module; returns the instance."""
    mock_cls = mocker.patch("commit_reput.workflow.RepositoryLifecycle")
    lifecycle = mock_cls.return_value
    lifecycle.initialize.return_value = PullResult.PULLED
    lifecycle.status.return_value = ["?? new.txt"]
    return lifecycle


def _workflow(threshold: int) -> SyncWorkflow:
    workflow = SyncWorkflow(rng=random.Random(0), clock=lambda: FIXED_NOW)
    workflow.init_repo(Path("/srv/notes"), "owner/notes", b"key", threshold, threshold)
    return workflow


def test_format_commit_message() -> None:
    """Verifies the message embeds a local, second-resolution timestamp."""
    assert format_commit_message(FIXED_NOW) == (
        "New content from commit-reput - 2024-05-01 12:30:00"
    )


def test_commit_before_init_is_rejected() -> None:
    """Verifies the workflow refuses to sync before init_repo has succeeded."""
    with pytest.raises(NotInitializedError):
        SyncWorkflow().commit_and_push_repo("Jane", "jane@example.com")


def test_init_repo_wires_lifecycle(mocker: MagicMock) -> None:
    """Verifies init_repo forwards the host, branch and deadline to the lifecycle."""
    mock_cls = mocker.patch("commit_reput.workflow.RepositoryLifecycle")
    mock_cls.return_value.initialize.return_value = PullResult.EMPTY_REMOTE
    workflow = SyncWorkflow(host="git.example.org", network_timeout=45)

    result = workflow.init_repo(Path("/srv/notes"), "team/site", b"key", 3, 10)

    assert result is PullResult.EMPTY_REMOTE
    args, kwargs = mock_cls.call_args
    assert args == (Path("/srv/notes"), "team/site", "git.example.org")
    assert kwargs["network_timeout"] == 45
    assert kwargs["initial_branch"] == "main"
    mock_cls.return_value.initialize.assert_called_once_with(b"key")
    assert 3 <= workflow.batcher.state.threshold <= 10


def test_reinit_releases_previous_credential(mock_lifecycle: MagicMock) -> None:
    """Verifies a second init_repo closes the credential of the first."""
    workflow = _workflow(1)

    workflow.init_repo(Path("/srv/notes"), "owner/notes", b"key", 1, 1)

    mock_lifecycle.close.assert_called_once()


def test_batches_dirty_runs_until_threshold(mock_lifecycle: MagicMock) -> None:
    """Verifies threshold 3 defers three dirty runs, commits on the fourth, resets."""
    workflow = _workflow(3)

    results = [workflow.commit_and_push_repo("Jane", "j@x") for _ in range(5)]

    assert results == [DEFERRED, DEFERRED, DEFERRED, COMMITTED, DEFERRED]
    mock_lifecycle.stage_all.assert_called_once()
    mock_lifecycle.commit.assert_called_once_with(
        "New content from commit-reput - 2024-05-01 12:30:00",
        "Jane",
        "j@x",
        FIXED_NOW,
    )
    mock_lifecycle.push.assert_called_once()
    assert workflow.batcher.state.pending_count == 1


def test_clean_tree_leaves_state_alone(mock_lifecycle: MagicMock) -> None:
    """Verifies clean runs touch neither counters nor the repository."""
    mock_lifecycle.status.return_value = []
    workflow = _workflow(2)
    before = dataclasses.replace(workflow.batcher.state)

    assert workflow.commit_and_push_repo("Jane", "j@x") is CLEAN
    assert workflow.commit_and_push_repo("Jane", "j@x") is CLEAN

    assert workflow.batcher.state == before
    assert workflow.batcher.state.pending_count == 0
    mock_lifecycle.stage_all.assert_not_called()
    mock_lifecycle.push.assert_not_called()


def test_push_failure_keeps_batch_state(
    mock_lifecycle: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies a failed push propagates and the next dirty run retries the commit."""
    workflow = _workflow(1)
    assert workflow.commit_and_push_repo("Jane", "j@x") is DEFERRED

    mock_lifecycle.push.side_effect = GitError("Connection timed out")
    with pytest.raises(GitError):
        workflow.commit_and_push_repo("Jane", "j@x")

    assert "Error pushing the repository" in caplog.text
    assert workflow.batcher.state.pending_count == 1

    mock_lifecycle.push.side_effect = None
    assert workflow.commit_and_push_repo("Jane", "j@x") is COMMITTED
    assert workflow.batcher.state.pending_count == 0


def test_status_failure_propagates(mock_lifecycle: MagicMock) -> None:
    """Verifies an unreadable working tree raises without touching the counters."""
    workflow = _workflow(1)
    mock_lifecycle.status.side_effect = GitError("index.lock exists")

    with pytest.raises(GitError):
        workflow.commit_and_push_repo("Jane", "j@x")

    assert workflow.batcher.state.pending_count == 0


def test_commit_failure_skips_push(mock_lifecycle: MagicMock) -> None:
    """Verifies a failed local commit never reaches the network."""
    workflow = _workflow(0)
    mock_lifecycle.commit.side_effect = GitError("nothing to commit")

    with pytest.raises(GitError):
        workflow.commit_and_push_repo("Jane", "j@x")

    mock_lifecycle.push.assert_not_called()


def test_concurrent_callers_commit_once_per_crossing(
    mock_lifecycle: MagicMock,
) -> None:
    """Verifies the lock keeps the counter exact and pushes once per crossing."""

    def slow_status() -> list[str]:
        time.sleep(0.001)
        return ["?? new.txt"]

    mock_lifecycle.status.side_effect = slow_status
    workflow = _workflow(2)
    start = threading.Barrier(12)
    results: list[SyncAttemptResult] = []
    results_lock = threading.Lock()

    def call() -> None:
        start.wait()
        result = workflow.commit_and_push_repo("Jane", "j@x")
        with results_lock:
            results.append(result)

    threads = [threading.Thread(target=call) for _ in range(12)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # Threshold 2 serializes into DEFERRED, DEFERRED, COMMITTED cycles.
    assert results.count(COMMITTED) == 4
    assert results.count(DEFERRED) == 8
    assert mock_lifecycle.push.call_count == 4
    assert mock_lifecycle.commit.call_count == 4
    assert workflow.batcher.state.pending_count == 0


@requires_git
def test_init_without_remote_still_succeeds(
    tmp_path: Path, rsa_key_bytes: bytes
) -> None:
    """Verifies a missing directory is created even when the pull cannot succeed."""
    workflow = SyncWorkflow(
        host="localhost.invalid", network_timeout=30, key_dir=tmp_path
    )
    target = tmp_path / "notes"

    result = workflow.init_repo(target, "nobody/nothing", rsa_key_bytes, 1, 1)

    assert result is PullResult.FAILED
    assert (target / ".git").is_dir()
    assert git(target, "remote") == "origin"
    assert (
        git(target, "remote", "get-url", "origin")
        == "git@localhost.invalid:nobody/nothing.git"
    )
    assert git(target, "config", "core.sparsecheckout") == "true"
    workflow.close()


@requires_git
def test_end_to_end_against_local_remote(
    tmp_path: Path, rsa_key_bytes: bytes
) -> None:
    """Verifies deferred runs, a real commit and a real push to a bare remote."""
    remote = tmp_path / "remote.git"
    remote.mkdir()
    git(remote, "init", "--bare", "-b", "main")
    target = tmp_path / "notes"

    workflow = SyncWorkflow(
        host="localhost.invalid", key_dir=tmp_path, clock=lambda: FIXED_NOW
    )
    workflow.init_repo(target, "nobody/nothing", rsa_key_bytes, 1, 1)
    git(target, "remote", "set-url", "origin", str(remote))

    assert workflow.commit_and_push_repo("Jane", "jane@example.com") is CLEAN

    (target / "posts").mkdir()
    (target / "posts" / "hello.md").write_text("# hello\n")
    assert workflow.commit_and_push_repo("Jane", "jane@example.com") is DEFERRED
    assert workflow.commit_and_push_repo("Jane", "jane@example.com") is COMMITTED

    assert git(remote, "log", "-1", "--format=%an <%ae> %s", "main") == (
        "Jane <jane@example.com> New content from commit-reput - 2024-05-01 12:30:00"
    )
    assert git(remote, "show", "main:posts/hello.md") == "# hello"
    assert workflow.commit_and_push_repo("Jane", "jane@example.com") is CLEAN
    workflow.close()
