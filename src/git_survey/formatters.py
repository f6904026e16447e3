"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import DisplayMode

if TYPE_CHECKING:
    from .core import DispatchReport, RepositoryStatusRecord, SurveySummary


def compute_unique_display_names(
    items: list[Any],
    name_attr: str = "name",
    path_attr: str = "path",
) -> dict[Path, str]:
    """Compute unique display names for items with duplicate names.

    When multiple items share the same name, parent directory components
    are added until each name becomes unique.

    Args:
        items: List of objects with name and path attributes
        name_attr: Name of the attribute containing the item name
        path_attr: Name of the attribute containing the item path

    Returns:
        Dictionary mapping path to display name
    """
    name_groups: dict[str, list[Any]] = defaultdict(list)
    for item in items:
        name_groups[getattr(item, name_attr)].append(item)

    result: dict[Path, str] = {}
    for name, group in name_groups.items():
        if len(group) == 1:
            result[getattr(group[0], path_attr)] = name
        else:
            paths = [getattr(item, path_attr) for item in group]
            for path, unique_name in zip(paths, _make_paths_unique(paths)):
                result[path] = unique_name
    return result


def _make_paths_unique(paths: list[Path]) -> list[str]:
    """Generate shortest unique display names for a list of paths.

    For each path, adds parent directory components until the name
    is unique among all paths.
    """
    path_parts_list = [list(reversed(p.parts)) for p in paths]

    result = []
    for i, parts in enumerate(path_parts_list):
        depth = 1
        while depth <= len(parts):
            candidate = "/".join(reversed(parts[:depth]))

            is_unique = True
            for j, other_parts in enumerate(path_parts_list):
                if i != j:
                    other_depth = min(depth, len(other_parts))
                    other_candidate = "/".join(reversed(other_parts[:other_depth]))
                    if candidate == other_candidate:
                        is_unique = False
                        break

            if is_unique:
                result.append(candidate)
                break
            depth += 1
        else:
            # Identical paths, e.g. the same repository given twice
            result.append("/".join(reversed(parts)))

    return result


class OutputFormatter:
    """Format dispatcher output for the console or as JSON."""

    def __init__(self, console: Console, mode: DisplayMode = DisplayMode.STANDARD):
        self.console = console
        self.mode = mode

    def print_report(self, report: DispatchReport, summary: SurveySummary):
        """Print every outcome, then the summary."""
        match self.mode:
            case DisplayMode.JSON:
                self._print_json(report, summary)
            case DisplayMode.CLASSIC:
                self._print_classic(report, summary)
            case _:
                self._print_table(report, summary)

    def _print_table(self, report: DispatchReport, summary: SurveySummary):
        """Print rich table output."""
        records = report.records
        display_names = compute_unique_display_names(records)

        table = Table(title="Repository Status")
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Branch")
        table.add_column("Upstream")
        table.add_column("Sync", justify="center")
        table.add_column("Working Tree", justify="center")

        for record in records:
            table.add_row(
                escape(display_names.get(record.path, record.name)),
                self._get_branch_display(record),
                escape(str(record.upstream)) if record.upstream else "[dim]-[/]",
                self._get_sync_icon(record),
                self._get_working_tree_display(record),
            )

        self.console.print(table)
        for outcome in report.not_repositories:
            self.console.print(f"[dim]skipped {escape(str(outcome.path))}: not a repository[/]")
        self.console.print()
        self._print_summary(summary, report.cancelled)

    def _print_classic(self, report: DispatchReport, summary: SurveySummary):
        """One line per repository: name, sync, working tree, branch, url."""
        records = report.records
        display_names = compute_unique_display_names(records)
        width = max((len(display_names.get(r.path, r.name)) for r in records), default=0)

        for record in records:
            name = display_names.get(record.path, record.name)
            self.console.print(
                f"[bold]{escape(name.ljust(width))}[/]  "
                f"{self._get_sync_icon(record)}  "
                f"{self._get_working_tree_display(record)}  "
                f"{self._get_branch_display(record)}  "
                f"[dim]{escape(record.url or 'none')}[/]"
            )
            for submodule in record.submodules or ():
                self.console.print(
                    f"  [dim]↳[/] {escape(submodule.name)}  {submodule.status.value}"
                )
        self._print_summary(summary, report.cancelled)

    def _get_branch_display(self, record: RepositoryStatusRecord) -> str:
        if record.branch is None:
            return "[dim]unknown[/]"
        if record.branch.detached:
            return "[magenta]HEAD (detached)[/]"
        return f"[green]{escape(record.branch.name)}[/]"

    def _get_sync_icon(self, record: RepositoryStatusRecord) -> str:
        """Get sync status icon."""
        from .core import SyncStatus

        divergence = record.divergence
        match record.sync_status:
            case SyncStatus.CLEAN:
                return "[green]✓[/]"
            case SyncStatus.AHEAD:
                return f"[yellow]⬆ {divergence.ahead}[/]"
            case SyncStatus.BEHIND:
                return f"[blue]⬇ {divergence.behind}[/]"
            case SyncStatus.DIVERGED:
                return f"[red]⬆{divergence.ahead} ⬇{divergence.behind}[/]"
            case SyncStatus.NO_UPSTREAM:
                return "[dim]no upstream[/]"
            case SyncStatus.DETACHED:
                return "[dim]detached[/]"
            case SyncStatus.REMOTE_ERROR:
                return f"[red]? {record.remote_error.kind.value}[/]"
            case SyncStatus.ERROR:
                return f"[red]✗ {escape(record.error[:30])}[/]"
            case _:
                return "[dim]?[/]"

    def _get_working_tree_display(self, record: RepositoryStatusRecord) -> str:
        """Get working tree status display."""
        from .core import DirtyState

        state = record.dirty_state
        if state is None:
            return "[dim]unknown[/]"
        if record.bare:
            return "[dim]bare[/]"
        if not state:
            return "[green]clean[/]"

        parts = []
        if DirtyState.STAGED in state:
            parts.append("[green]staged[/]")
        if DirtyState.UNSTAGED in state:
            parts.append("[yellow]unstaged[/]")
        if DirtyState.UNTRACKED in state:
            parts.append("[red]untracked[/]")
        if DirtyState.SUBMODULE in state:
            parts.append("[magenta]submodule[/]")
        return " ".join(parts)

    def _print_summary(self, summary: SurveySummary, cancelled: bool = False):
        """Print summary."""
        parts = [f"[bold]Total:[/] {summary.total}"]

        if summary.clean > 0:
            parts.append(f"[green]✓ Clean:[/] {summary.clean}")
        if summary.dirty > 0:
            parts.append(f"[yellow]✎ Dirty:[/] {summary.dirty}")
        if summary.ahead > 0:
            parts.append(f"[yellow]⬆ Ahead:[/] {summary.ahead}")
        if summary.behind > 0:
            parts.append(f"[blue]⬇ Behind:[/] {summary.behind}")
        if summary.diverged > 0:
            parts.append(f"[red]⬆⬇ Diverged:[/] {summary.diverged}")
        if summary.remote_errors > 0:
            parts.append(f"[red]? Remote unknown:[/] {summary.remote_errors}")
        if summary.errors > 0:
            parts.append(f"[red]✗ Errors:[/] {summary.errors}")
        if summary.not_repositories > 0:
            parts.append(f"[dim]Skipped:[/] {summary.not_repositories}")

        self.console.print(" | ".join(parts))
        if cancelled:
            self.console.print("[bold red]Interrupted: results are incomplete[/]")

    def _print_json(self, report: DispatchReport, summary: SurveySummary):
        """Print JSON output."""
        output = {
            "repositories": [o.to_dict() for o in report],
            "summary": summary.to_dict(),
            "cancelled": report.cancelled,
        }
        self.console.print(
            json.dumps(output, indent=2, default=str),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )
