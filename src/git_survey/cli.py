"""Command line interface."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn

from ._version import __version__
from .config import DisplayMode, Settings, load_settings
from .core import Dispatcher, StatusResolver, discover_repositories, summarize
from .exceptions import ConfigError
from .formatters import OutputFormatter
from .schema import get_tool_schema

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="git-survey",
    help="A quick look at every Git repository under a directory.",
    no_args_is_help=True,
)


def setup_logging(verbosity: int) -> None:
    """Send log records to stderr through rich; -v for info, -vv for debug."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"git-survey {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        help="Output MCP-compatible tool schema for AI agents",
    ),
):
    """git-survey: A quick look at every Git repository under a directory."""
    if schema:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()


def get_console_and_formatter(mode: DisplayMode) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    json_output = mode == DisplayMode.JSON
    console = Console(force_terminal=not json_output)
    formatter = OutputFormatter(console, mode=mode)
    return console, formatter


def collect_repository_paths(roots: list[Path]) -> list[Path]:
    """Discover repositories under every root, each path once."""
    seen: set[Path] = set()
    paths = []
    for root in roots:
        for path in discover_repositories(root):
            if path not in seen:
                seen.add(path)
                paths.append(path)
    return paths


@app.command()
def status(
    paths: list[Path] = typer.Argument(
        None,
        help="Directories to scan (default: config file paths, else current directory)",
    ),
    fetch: bool = typer.Option(
        False,
        "--fetch",
        "-f",
        help="Fetch upstream branches before comparing",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
    display_mode: DisplayMode = typer.Option(
        None,
        "--display-mode",
        "-d",
        case_sensitive=False,
        help="How to display results",
    ),
    jobs: int = typer.Option(
        None,
        "--jobs",
        "-J",
        min=1,
        help="Number of parallel workers (default: CPU count)",
    ),
    sequential: bool = typer.Option(
        False,
        "--sequential",
        "-s",
        help="Run sequentially instead of parallel",
    ),
    timeout: float = typer.Option(
        None,
        "--timeout",
        min=0.1,
        help="Seconds allowed for contacting one remote",
    ),
    include_email: bool = typer.Option(
        False,
        "--include-email",
        help="Report the effective user.email of each repository",
    ),
    include_ignored: bool = typer.Option(
        False,
        "--include-ignored",
        help="Count ignored files as untracked",
    ),
    include_submodules: bool = typer.Option(
        False,
        "--include-submodules",
        help="List submodules and their checkout state",
    ),
    config_file: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file to use instead of the default locations",
    ),
    ignore_config: bool = typer.Option(
        False,
        "--ignore-config",
        "-i",
        help="Ignore config file settings",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Print the merged settings and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase log verbosity (repeatable)",
    ),
):
    """Show branch, divergence and working tree status of all repositories."""
    setup_logging(verbose)

    try:
        settings: Settings = load_settings(config_file, ignore_file=ignore_config)
    except ConfigError as e:
        Console(stderr=True).print(f"[red]Error: {e}[/]")
        raise typer.Exit(2)

    settings = settings.merged(
        fetch_remote=True if fetch else None,
        include_email=True if include_email else None,
        include_ignored=True if include_ignored else None,
        include_submodules=True if include_submodules else None,
        contact_timeout=timeout,
        max_workers=jobs,
        display_mode=DisplayMode.JSON if json_output else display_mode,
        paths=list(paths) if paths else None,
    )

    if dry_run:
        print(json.dumps(settings.to_dict(), indent=2))
        raise typer.Exit()

    console, formatter = get_console_and_formatter(settings.display_mode)
    roots = settings.paths or [Path(".")]
    dispatcher = Dispatcher(
        StatusResolver(settings),
        settings.max_workers,
        sequential=sequential,
    )

    if settings.display_mode != DisplayMode.JSON:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Scanning directories...", total=None)
            repo_paths = collect_repository_paths(roots)
            progress.add_task(
                "Fetching and analyzing..." if settings.fetch_remote else "Analyzing...",
                total=None,
            )
            report = dispatcher.dispatch(repo_paths)
    else:
        repo_paths = collect_repository_paths(roots)
        report = dispatcher.dispatch(repo_paths)

    logger.info("resolved %d of %d repositories", len(report), len(repo_paths))
    formatter.print_report(report, summarize(report))
    if report.cancelled:
        raise typer.Exit(130)
