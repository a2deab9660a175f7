import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import daemon
from .config import Config
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE, PID_FILE, REMOTE_NAME
from .exceptions import GitError
from .git_wrapper import GitRepo
from .lifecycle import build_remote_url

logger = logging.getLogger(APP_NAME)
console = Console()

CONFIG_TEMPLATE = """# commit-reput Configuration

[repo]
# path = "~/notes"
# remote = "owner/notes"
# key_file = "~/.ssh/id_ed25519"
# host = "github.com"

[commit]
# username = "Jane Doe"
# email = "jane@example.com"
# threshold_min = 3
# threshold_max = 10

[daemon]
# interval = "1m"
# network_timeout = "2m"
"""


def _daemon_pid() -> int | None:
    """Returns the PID of a running daemon, or None."""
    if not PID_FILE.exists():
        return None
    try:
        with open(PID_FILE) as f:
            pid = int(f.read().strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, OSError) as e:
        logger.debug(f"Ignoring stale PID file {PID_FILE}: {e}")
        return None


def show_status(config_path: Path | None = None) -> None:
    """Displays the daemon state and the pending changes of the synced repository."""
    pid = _daemon_pid()

    system_content = Text()
    system_content.append("Daemon: ", style="bold")
    if pid:
        system_content.append(f"Active (PID {pid})\n", style="bold green")
    else:
        system_content.append("Stopped\n", style="bold red")
    system_content.append("Config: ", style="bold")
    system_content.append(str(config_path or CONFIG_FILE))
    console.print(Panel(system_content, title="System Status", expand=False))

    conf = Config.load(config_path)
    if not conf.repo.path:
        console.print(
            Panel(
                "No repository configured.\n"
                "Run [bold cyan]commit-reput config[/bold cyan] to set one up.",
                title="Repository Status",
                expand=False,
                border_style="yellow",
            )
        )
        return

    repo_path = Path(conf.repo.path).expanduser()
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Path:", str(repo_path))
    table.add_row("Expected remote:", build_remote_url(conf.repo.host, conf.repo.remote))
    table.add_row(
        "Threshold:", f"{conf.commit.threshold_min}-{conf.commit.threshold_max} runs"
    )

    try:
        repo = GitRepo(repo_path)
        table.add_row("Remote:", repo.remote_url(REMOTE_NAME) or "[red]missing[/red]")
        changes = repo.status_porcelain()
        if changes:
            table.add_row("Pending:", f"[yellow]{len(changes)} changed files[/yellow]")
        else:
            table.add_row("Pending:", "[green]Clean[/green]")
    except ValueError:
        table.add_row("Repository:", "[red]Not initialised yet[/red]")
    except GitError as e:
        table.add_row("Repository:", f"[red]{e}[/red]")

    console.print(Panel(table, title="Repository Status", expand=False))


def open_config() -> None:
    """Opens the global configuration file in the system default editor."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(CONFIG_TEMPLATE)

    editor = os.environ.get("EDITOR")
    if not editor:
        if sys.platform == "darwin":
            editor = "open"
        else:
            editor = "nano"

    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")

    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except Exception as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="commit-reput Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row("repo", "path", "str", "required", "Local directory kept in sync.")
    table.add_row(
        "", "remote", "str", "required", "Remote identifier, e.g. 'owner/name'."
    )
    table.add_row("", "host", "str", '"github.com"', "SSH host serving the remote.")
    table.add_row(
        "", "key_file", "str", "required", "SSH private key used for pull and push."
    )
    table.add_row(
        "", "initial_branch", "str", '"main"', "Branch name for a new repository."
    )

    table.add_row(
        "commit",
        "threshold_min",
        "int",
        "3",
        "Fewest dirty runs deferred before a commit.",
    )
    table.add_row(
        "", "threshold_max", "int", "10", "Most dirty runs deferred before a commit."
    )
    table.add_row("", "username", "str", "required", "Commit author name.")
    table.add_row("", "email", "str", "required", "Commit author email.")

    table.add_row(
        "daemon",
        "interval",
        "int | str",
        '"1m"',
        "Time between sync runs (e.g., '30s', '5m', 60).",
    )
    table.add_row(
        "",
        "network_timeout",
        "int | str",
        '"2m"',
        "Deadline for pull and push (e.g., '2m', 120).",
    )

    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )

    console.print(table)


def tail_log() -> None:
    """Follows the daemon log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


def main() -> None:
    """Main entry point for the commit-reput CLI."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Mirror a directory to a remote git repository in batches.",
    )
    subparsers = parser.add_subparsers(dest="command")

    for name, help_text in [
        ("run", "Start the sync daemon in the foreground"),
        ("once", "Initialise and run a single sync pass"),
        ("status", "Show daemon and repository status"),
    ]:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--config", type=Path, help="Path to a config file")

    config_parser = subparsers.add_parser(
        "config", help="Open global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )
    subparsers.add_parser("log", help="Tail the daemon log file")

    args = parser.parse_args()

    if args.command == "run":
        sys.exit(daemon.main(args.config))
    elif args.command == "once":
        sys.exit(daemon.main(args.config, once=True))
    elif args.command == "status":
        show_status(args.config)
    elif args.command == "config":
        if args.list:
            show_config_reference()
        else:
            open_config()
    elif args.command == "log":
        tail_log()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
