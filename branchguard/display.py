"""Rich rendering of snapshots and reports for the CLI."""

import json
from typing import Any, Dict, List

from rich.console import Console
from rich.table import Table

from .commit import Commit
from .compatibility import CompatibilityReport
from .conflict_predictor import ConflictPrediction
from .divergence import DivergenceReport
from .errors import BackupFailed, RemoteRejected, ReplaceStepError
from .formatting import format_path_list, format_short_sha, pluralize
from .merge_report import MergeReport
from .replace import ReplaceOperation, confirmation_phrase
from .risk_rules import Severity
from .snapshot import RepositorySnapshot

SIGNAL_TITLES = {
    "deleted_files": "Deleted files",
    "dependency_mismatch": "Dependency mismatch",
    "config_change": "Config change",
    "api_change": "API change",
    "database_change": "Database change",
}


def display_json(data: Dict[str, Any], console: Console) -> None:
    console.print(json.dumps(data, indent=2))


def display_snapshot(snapshot: RepositorySnapshot, console: Console) -> None:
    """Show the current branch and its sync state."""
    state = "[yellow]uncommitted changes[/yellow]" if snapshot.is_dirty else "[green]clean[/green]"

    console.print(f"[bold]Repository: {snapshot.repo_root}[/bold]")
    console.print(f"├── Branch: [cyan]{snapshot.branch}[/cyan]")
    console.print(f"├── Working tree: {state}")
    if snapshot.upstream:
        console.print(
            f"├── Upstream: {snapshot.upstream} "
            f"({snapshot.ahead} ahead, {snapshot.behind} behind)"
        )
    else:
        console.print("├── Upstream: [dim]none[/dim]")
    unpushed = "[yellow]yes[/yellow]" if snapshot.has_unpushed else "no"
    console.print(f"└── Unpushed commits: {unpushed}")


def display_compatibility(report: CompatibilityReport, console: Console) -> None:
    """Show risk signals as a table, followed by informational notes."""
    if not report.has_issues:
        console.print(f"[green]✅ No compatibility risks found for {report.source} → {report.target}[/green]")
    else:
        table = Table(title=f"Compatibility risks: {report.source} → {report.target}")
        table.add_column("Risk", style="bold")
        table.add_column("Severity")
        table.add_column("Files", style="cyan")
        table.add_column("Explanation", style="white")

        for signal in report.signals:
            severity = (
                "[red]high[/red]" if signal.severity == Severity.HIGH else "[yellow]warning[/yellow]"
            )
            table.add_row(
                SIGNAL_TITLES.get(signal.kind.value, signal.kind.value),
                severity,
                format_path_list(signal.files),
                signal.explanation,
            )
        console.print(table)

        for signal in report.signals:
            for detail in signal.details:
                console.print(f"  [dim]• {detail}[/dim]")

    for note in report.notes:
        console.print(f"[dim]ℹ️  {note}[/dim]")


def display_conflicts(prediction: ConflictPrediction, console: Console) -> None:
    """Show merge simulation results."""
    if not prediction.simulated:
        console.print("[yellow]⚠️  Merge simulation unavailable; using changed-file overlap[/yellow]")

    if prediction.has_conflicts:
        files = prediction.conflicted_files or prediction.affected_files
        console.print(f"[red]❌ Merge would conflict in {pluralize(len(files), 'file')}:[/red]")
        for path in files:
            console.print(f"   [red]✗[/red] {path}")
    else:
        console.print("[green]✅ Merge simulation found no conflicts[/green]")

    if prediction.affected_files and not prediction.has_conflicts:
        console.print(
            f"[dim]{pluralize(len(prediction.affected_files), 'file')} changed on both sides "
            f"(merged cleanly): {format_path_list(prediction.affected_files)}[/dim]"
        )


def display_divergence(report: DivergenceReport, console: Console) -> None:
    """Show commit and file divergence plus the recommendation."""
    console.print(f"[bold]Divergence: {report.source} vs {report.target}[/bold]")
    console.print(f"├── {report.source} ahead: {report.ahead}")
    console.print(f"├── {report.source} behind: {report.behind}")
    console.print(f"└── Files: +{report.added_files} / -{report.deleted_files}")

    if report.suggest_replace:
        console.print(f"[yellow]💡 Recommendation: replace {report.target} with {report.source}[/yellow]")
        for reason in report.reasons:
            console.print(f"   [yellow]•[/yellow] {reason}")
    else:
        console.print("[green]💡 Recommendation: ordinary merge[/green]")


def display_merge_report(report: MergeReport, console: Console) -> None:
    display_snapshot(report.snapshot, console)
    console.print()
    if report.conflicts:
        display_conflicts(report.conflicts, console)
        console.print()
    if report.compatibility:
        display_compatibility(report.compatibility, console)
        console.print()
    if report.divergence:
        display_divergence(report.divergence, console)
        console.print()


def _commit_table(title: str, commits: List[Commit], style: str) -> Table:
    table = Table(title=title)
    table.add_column("SHA", style=style)
    table.add_column("Date", style="bright_cyan")
    table.add_column("Author", style="white")
    table.add_column("Message", style="white")
    for commit in commits[:20]:
        table.add_row(commit.short_sha, commit.short_date, commit.author, commit.short_message())
    if len(commits) > 20:
        table.add_row("…", "", "", f"{len(commits) - 20} more")
    return table


def display_impact(operation: ReplaceOperation, console: Console) -> None:
    """Show what replacing target with source loses and gains."""
    impact = operation.impact
    if impact is None:
        return

    console.print(
        f"[bold]Replace {operation.target} ({format_short_sha(impact.target_sha)}) "
        f"with {operation.source} ({format_short_sha(impact.source_sha)})[/bold]"
    )
    if impact.commits_lost:
        console.print(
            _commit_table(
                f"Commits only on {operation.target} (will be lost)", impact.commits_lost, "red"
            )
        )
    else:
        console.print(f"[green]No commits on {operation.target} will be lost[/green]")
    if impact.commits_gained:
        console.print(
            _commit_table(
                f"Commits only on {operation.source} (will be gained)",
                impact.commits_gained,
                "green",
            )
        )
    console.print(f"[dim]Backup branch: {operation.backup_branch}[/dim]")
    console.print(
        f"[dim]To continue you will have to type: {confirmation_phrase(operation.target)}[/dim]"
    )


def display_replace_failure(
    error: ReplaceStepError, target: str, remote: str, console: Console
) -> None:
    console.print(f"[red]❌ Replace failed at step '{error.step}': {error}[/red]")
    console.print(f"[yellow]Last completed step: {error.last_completed}[/yellow]")

    if isinstance(error, BackupFailed):
        if error.backup_branch:
            console.print(
                f"[yellow]Local branch {error.backup_branch} was created but not pushed "
                f"to {remote}; delete it with: git branch -D {error.backup_branch}[/yellow]"
            )
        console.print(f"[yellow]No destructive step ran; {target} is unchanged.[/yellow]")
        return

    if isinstance(error, RemoteRejected):
        console.print(
            f"[yellow]{remote}/{target} was not changed. Backup branch "
            f"{error.backup_branch} is kept.[/yellow]"
        )
        return

    console.print(
        f"[yellow]{remote}/{target} was replaced. Backup branch {error.backup_branch} "
        f"holds the previous {target}; to restore it run:[/yellow]"
    )
    console.print(
        f"   git push --force {remote} {error.backup_branch}:refs/heads/{target}\n"
        f"   git checkout -B {target} {error.backup_branch}"
    )
    console.print(
        f"[yellow]To keep the replace instead, clean the work tree and run: "
        f"git checkout {target} && git reset --hard {remote}/{target}[/yellow]"
    )


def display_replace_result(operation: ReplaceOperation, console: Console) -> None:
    console.print(
        f"[green]✅ {operation.target} now points at {operation.source} "
        f"(local and {operation.remote})[/green]"
    )
    console.print(f"[dim]Backup kept at {operation.backup_branch}[/dim]")
    if operation.cleanup_error:
        console.print(f"[yellow]⚠️  {operation.cleanup_error}[/yellow]")
