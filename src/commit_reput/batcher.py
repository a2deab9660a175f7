"""Commit throttling: turn "commit on every change" into "commit every N runs".

N is drawn uniformly from ``[threshold_min, threshold_max]`` and redrawn only
after a successful commit and push, so agents sharing the same schedule do not
commit in lockstep. A failed push leaves the counter and threshold untouched,
which makes the next invocation re-attempt the commit.
"""

import enum
import logging
import random
from dataclasses import dataclass

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class SyncAttemptResult(enum.Enum):
    """Outcome of a single sync invocation."""

    CLEAN = "clean"
    """No working-tree changes."""

    DEFERRED = "deferred"
    """Changes exist but the threshold has not been reached."""

    COMMITTED = "committed"
    """Changes are due to be (or have been) staged, committed and pushed."""


@dataclass
class BatchState:
    """Counters driving the commit schedule.

    Attributes:
        pending_count (int): Dirty invocations deferred since the last commit.
        threshold (int): Deferrals allowed before the next commit.
        threshold_min (int): Inclusive lower bound for `threshold`.
        threshold_max (int): Inclusive upper bound for `threshold`.
    """

    pending_count: int
    threshold: int
    threshold_min: int
    threshold_max: int


class CommitBatcher:
    """Decides, per invocation, whether to defer or to commit.

    Attributes:
        state (BatchState): The current schedule counters.
    """

    def __init__(
        self, threshold_min: int, threshold_max: int, rng: random.Random | None = None
    ):
        """Initializes the batcher with a first random threshold.

        Args:
            threshold_min (int): Inclusive lower bound of the threshold.
            threshold_max (int): Inclusive upper bound of the threshold. Must not be
                                 smaller than `threshold_min`; this is not checked.
            rng (random.Random | None): Random source. Defaults to a fresh,
                                        system-seeded instance.
        """
        self._rng = rng or random.Random()
        self.state = BatchState(
            pending_count=0,
            threshold=threshold_min,
            threshold_min=threshold_min,
            threshold_max=threshold_max,
        )
        self.state.threshold = self._draw_threshold()

    def _draw_threshold(self) -> int:
        return self._rng.randint(self.state.threshold_min, self.state.threshold_max)

    def decide(self, work_tree_is_clean: bool) -> SyncAttemptResult:
        """Classifies one invocation.

        Args:
            work_tree_is_clean (bool): Whether `git status` reported no changes.

        Returns:
            SyncAttemptResult: CLEAN and COMMITTED leave the state as is; DEFERRED
                               increments the pending counter by one.
        """
        if work_tree_is_clean:
            logger.debug("Git status clean -> nothing to commit")
            return SyncAttemptResult.CLEAN

        if self.state.pending_count < self.state.threshold:
            logger.debug(
                f"Pending {self.state.pending_count} < threshold {self.state.threshold}"
            )
            self.state.pending_count += 1
            return SyncAttemptResult.DEFERRED

        return SyncAttemptResult.COMMITTED

    def record_success(self) -> None:
        """Resets the counter and draws a new threshold after a pushed commit."""
        self.state.pending_count = 0
        self.state.threshold = self._draw_threshold()
        logger.debug(f"Next commit after {self.state.threshold} deferred runs")
