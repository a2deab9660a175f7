import atexit
import logging
import os
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from .config import Config
from .constants import APP_NAME, LOG_FILE, PID_FILE
from .exceptions import SyncError
from .workflow import SyncWorkflow

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)


def setup_logging(interactive: bool, max_log_size: int = 5 * 1024 * 1024) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to file/stderr
                            with rotation enabled.
        max_log_size (int, optional): Bytes before the log file rotates.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Always log to stderr (captured by systemd/launchd).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        # In daemon mode, rotate logs to file.
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def build_workflow(config: Config) -> SyncWorkflow:
    """Creates a workflow bound to the configured host, branch and deadline."""
    return SyncWorkflow(
        host=config.repo.host,
        initial_branch=config.repo.initial_branch,
        network_timeout=config.daemon.network_timeout or None,
    )


def run_once(workflow: SyncWorkflow, config: Config) -> None:
    """Runs a single sync invocation, logging instead of raising on failure.

    Args:
        workflow (SyncWorkflow): An initialised workflow.
        config (Config): Provides the commit identity.
    """
    try:
        result = workflow.commit_and_push_repo(
            config.commit.username, config.commit.email
        )
        logger.debug(f"Sync invocation: {result.value}")
    except SyncError as e:
        # State is not reset on failure; the next invocation retries the commit.
        logger.error(f"SYNC ERROR {Path(config.repo.path).name}: {e}")


def _write_pid_file() -> None:
    try:
        with open(PID_FILE, "w") as f:
            f.write(str(os.getpid()))

        # Ensure cleanup on exit.
        atexit.register(lambda: PID_FILE.unlink(missing_ok=True))
    except OSError as e:
        logger.warning(f"Could not write PID file: {e}")


def main(config_path: Path | None = None, once: bool = False) -> int:
    """The main daemon execution loop.

    Initialises the repository, then runs one sync invocation every
    `daemon.interval` seconds until SIGTERM or SIGINT.

    Args:
        config_path (Path | None): An explicit config file. Defaults to the global
                                   config.
        once (bool, optional): Run initialisation and a single invocation with
                               interactive logging. Defaults to False.

    Returns:
        int: The process exit code.
    """
    config = Config.load(config_path)
    setup_logging(once, config.limits.max_log_size)

    try:
        config.validate()
        key = Path(config.repo.key_file).expanduser().read_bytes()
    except (SyncError, OSError) as e:
        logger.critical(f"CRITICAL: {e}")
        return 1

    workflow = build_workflow(config)
    repo_path = Path(config.repo.path).expanduser()
    try:
        pull = workflow.init_repo(
            repo_path,
            config.repo.remote,
            key,
            config.commit.threshold_min,
            config.commit.threshold_max,
        )
    except SyncError as e:
        logger.critical(f"CRITICAL {repo_path.name}: {e}")
        return 1
    logger.info(f"Initialised {repo_path} (initial pull: {pull.value})")

    atexit.register(workflow.close)

    if once:
        run_once(workflow, config)
        return 0

    _write_pid_file()

    stop = threading.Event()

    def stop_handler(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received signal {signum}, shutting down.")
        stop.set()

    signal.signal(signal.SIGTERM, stop_handler)
    signal.signal(signal.SIGINT, stop_handler)

    while not stop.is_set():
        run_once(workflow, config)
        stop.wait(config.daemon.interval)

    return 0


def entrypoint() -> None:
    """Console-script wrapper for `main`."""
    sys.exit(main())


if __name__ == "__main__":
    entrypoint()
