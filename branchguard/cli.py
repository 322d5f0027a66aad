"""Branchguard CLI - guarded branch workflows on top of git."""

from typing import Optional

import typer
from rich import print
from rich.console import Console

from . import __version__
from .compatibility import CompatibilityAnalyzer
from .config import (
    get_capabilities,
    get_protected_branch,
    get_remote,
    set_capability_command,
    set_protected_command,
    set_remote_command,
    show_config_command,
)
from .conflict_predictor import ConflictPredictor
from .display import (
    display_compatibility,
    display_conflicts,
    display_divergence,
    display_impact,
    display_json,
    display_merge_report,
    display_replace_failure,
    display_replace_result,
    display_snapshot,
)
from .divergence import DivergenceAnalyzer
from .errors import BranchGuardError, InvalidConfirmation, NoCommonAncestor, ReplaceStepError
from .git_basic import GitBasicInterface, GitError, NotARepository
from .merge_report import build_merge_report
from .replace import ReplaceOperation, ReplacePrompter, confirmation_phrase
from .snapshot import RepositorySnapshot
from .workflows import BranchWorkflow

app = typer.Typer(
    name="branchguard",
    help="Guarded branch workflows: risk analysis before merges and safe branch replacement",
)

console = Console()


class TyperPrompter(ReplacePrompter):
    """Interactive answers for the replace confirmation gates."""

    def __init__(self, console: Console):
        self.console = console

    def confirm_replace(self, operation: ReplaceOperation) -> bool:
        display_impact(operation, self.console)
        return typer.confirm(
            f"Replace {operation.target} with {operation.source}? This rewrites "
            f"{operation.remote}/{operation.target}",
            default=False,
        )

    def typed_phrase(self, operation: ReplaceOperation) -> str:
        phrase = confirmation_phrase(operation.target)
        return typer.prompt(f"Type '{phrase}' to confirm", default="", show_default=False)

    def confirm_cleanup(self, operation: ReplaceOperation) -> bool:
        return typer.confirm(
            f"Delete {operation.source} locally and on {operation.remote}?", default=False
        )


def _open_git(verbose: bool = False) -> GitBasicInterface:
    try:
        return GitBasicInterface(console=console, verbose=verbose)
    except NotARepository as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("[yellow]Please run branchguard from within a git repository.[/yellow]")
        raise typer.Exit(1) from None


def _workflow(git: GitBasicInterface) -> BranchWorkflow:
    return BranchWorkflow(
        git,
        remote=get_remote(),
        protected_branch=get_protected_branch(),
        capabilities=get_capabilities(),
    )


def _fetch(git: GitBasicInterface, remote: str) -> None:
    console.print(f"[dim]Fetching latest from {remote}...[/dim]")
    try:
        git.fetch(remote)
    except GitError:
        console.print(f"[yellow]⚠️  Could not fetch {remote}; using local refs[/yellow]")


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(1)


def _run_replace(git: GitBasicInterface, source: str, target: str, verbose: bool) -> None:
    workflow = _workflow(git)
    try:
        orchestrator = workflow.start_replace(source, target, verbose=verbose)
        operation = orchestrator.execute(TyperPrompter(console))
    except InvalidConfirmation as e:
        console.print(f"[yellow]{e}. Nothing was changed.[/yellow]")
        raise typer.Exit(1) from None
    except ReplaceStepError as e:
        display_replace_failure(e, target, workflow.remote, console)
        raise typer.Exit(1) from None
    except (BranchGuardError, GitError, ValueError) as e:
        _fail(str(e))
    else:
        display_replace_result(operation, console)


@app.callback(invoke_without_command=True)
def main_callback(ctx: typer.Context) -> None:
    """Show repository status when no command is provided."""
    if ctx.invoked_subcommand is None:
        git = _open_git()
        display_snapshot(RepositorySnapshot.capture(git), console)
        print(ctx.get_help())
        raise typer.Exit()


@app.command("status")
def status(
    format_type: str = typer.Option("table", "--format", help="Output format: table or json"),
) -> None:
    """Show current branch, working tree and upstream state."""
    git = _open_git()
    snapshot = RepositorySnapshot.capture(git)
    if format_type == "json":
        display_json(snapshot.to_dict(), console)
    else:
        display_snapshot(snapshot, console)


@app.command("analyze")
def analyze(
    source: str = typer.Argument(help="Branch that would be merged"),
    target: Optional[str] = typer.Argument(None, help="Branch merged into (default: protected)"),
    format_type: str = typer.Option("table", "--format", help="Output format: table or json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show git commands being run"),
) -> None:
    """Predict conflicts and compatibility risks of merging SOURCE into TARGET."""
    git = _open_git(verbose)
    target = target or get_protected_branch()

    try:
        prediction = ConflictPredictor(git, verbose=verbose).predict(source, target)
        report = CompatibilityAnalyzer(git, verbose=verbose).analyze(source, target)
    except NoCommonAncestor as e:
        _fail(f"{e}. Merging is blocked; consider `branchguard replace {source} {target}`.")
    except GitError as e:
        _fail(str(e))

    if format_type == "json":
        display_json({"conflicts": prediction.to_dict(), "compatibility": report.to_dict()}, console)
        return

    display_conflicts(prediction, console)
    console.print()
    display_compatibility(report, console)


@app.command("divergence")
def divergence(
    source: str = typer.Argument(help="Branch being compared"),
    target: Optional[str] = typer.Argument(None, help="Reference branch (default: protected)"),
    format_type: str = typer.Option("table", "--format", help="Output format: table or json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show git commands being run"),
) -> None:
    """Measure divergence of SOURCE from TARGET and recommend merge or replace."""
    git = _open_git(verbose)
    target = target or get_protected_branch()

    try:
        report = DivergenceAnalyzer(git, verbose=verbose).analyze(source, target)
    except GitError as e:
        _fail(str(e))

    if format_type == "json":
        display_json(report.to_dict(), console)
    else:
        display_divergence(report, console)


@app.command("merge")
def merge(
    source: str = typer.Argument(help="Branch to merge"),
    target: Optional[str] = typer.Argument(None, help="Branch to merge into (default: protected)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show git commands being run"),
) -> None:
    """Analyze, then merge SOURCE into TARGET (or hand off to a guarded replace)."""
    git = _open_git(verbose)
    workflow = _workflow(git)
    target = target or workflow.protected_branch
    _fetch(git, workflow.remote)

    try:
        report = build_merge_report(git, source, target, workflow.capabilities, verbose=verbose)
    except NoCommonAncestor as e:
        console.print(f"[red]❌ {e}: histories are unrelated, a merge is blocked.[/red]")
        if workflow.capabilities.safe_replace and typer.confirm(
            f"Replace {target} with {source} instead?", default=False
        ):
            _run_replace(git, source, target, verbose)
            return
        raise typer.Exit(1) from None
    except GitError as e:
        _fail(str(e))

    display_merge_report(report, console)

    if report.snapshot.is_dirty:
        _fail("Uncommitted changes present; commit or stash before merging.")

    if report.recommendation == "replace" and workflow.capabilities.safe_replace:
        if typer.confirm(f"Replace {target} with {source} instead of merging?", default=False):
            _run_replace(git, source, target, verbose)
            return

    if not typer.confirm(
        f"Merge {source} into {target}?", default=report.recommendation == "merge"
    ):
        console.print("[yellow]Merge cancelled.[/yellow]")
        return

    outcome = workflow.merge(report.snapshot, source, target)
    if outcome.succeeded:
        console.print(f"[green]✅ Merged {source} into {target}[/green]")
        if typer.confirm(f"Push {target} to {workflow.remote}?", default=True):
            try:
                workflow.push_current(workflow.snapshot())
            except (BranchGuardError, GitError) as e:
                _fail(str(e))
            console.print(f"[green]✅ Pushed {target}[/green]")
        return

    console.print(f"[red]❌ Merge stopped with exit code {outcome.exit_code}[/red]")
    if typer.confirm("Abort the merge and restore the previous state?", default=True):
        git.abort_merge()
        console.print("[yellow]Merge aborted.[/yellow]")
    else:
        console.print("[yellow]Resolve the conflicts, then commit to finish the merge.[/yellow]")
    raise typer.Exit(1)


@app.command("replace")
def replace(
    source: str = typer.Argument(help="Branch whose history wins"),
    target: Optional[str] = typer.Argument(None, help="Branch to overwrite (default: protected)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show git commands being run"),
) -> None:
    """Back up TARGET, then overwrite it with SOURCE locally and on the remote."""
    git = _open_git(verbose)
    target = target or get_protected_branch()
    _fetch(git, get_remote())
    _run_replace(git, source, target, verbose)


@app.command("commit")
def commit(
    message: str = typer.Option(..., "--message", "-m", help="Commit message"),
    push: bool = typer.Option(False, "--push", help="Push after committing"),
) -> None:
    """Stage all changes and commit them."""
    git = _open_git()
    workflow = _workflow(git)
    try:
        sha = workflow.commit_all(message)
        console.print(f"[green]✅ Committed {sha[:8]}[/green]")
        if push:
            workflow.push_current(workflow.snapshot())
            console.print("[green]✅ Pushed[/green]")
    except (BranchGuardError, GitError) as e:
        _fail(str(e))


@app.command("push")
def push() -> None:
    """Push the current branch (sets upstream on first push)."""
    git = _open_git()
    workflow = _workflow(git)
    try:
        snapshot = workflow.snapshot()
        workflow.push_current(snapshot)
    except (BranchGuardError, GitError) as e:
        _fail(str(e))
    console.print(f"[green]✅ Pushed {snapshot.branch} to {workflow.remote}[/green]")


# Create branch subcommand group
branch_app = typer.Typer(name="branch", help="Create, switch and list branches", no_args_is_help=True)
app.add_typer(branch_app)


@branch_app.command("list")
def branch_list() -> None:
    """List local branches."""
    git = _open_git()
    current = git.get_current_branch()
    for name in _workflow(git).list_branches():
        marker = "[green]*[/green]" if name == current else " "
        console.print(f"{marker} {name}")


@branch_app.command("create")
def branch_create(
    name: str = typer.Argument(help="New branch name"),
    start_point: Optional[str] = typer.Option(None, "--from", help="Start point (default: HEAD)"),
    no_switch: bool = typer.Option(False, "--no-switch", help="Create without switching"),
) -> None:
    """Create a branch and switch to it."""
    git = _open_git()
    try:
        _workflow(git).create_branch(name, start_point, switch=not no_switch)
    except (BranchGuardError, GitError) as e:
        _fail(str(e))
    console.print(f"[green]✅ Created branch {name}[/green]")


@branch_app.command("switch")
def branch_switch(
    name: str = typer.Argument(help="Branch to switch to"),
    stash: bool = typer.Option(False, "--stash", help="Stash local changes before switching"),
) -> None:
    """Switch branches, refusing to carry uncommitted changes unless --stash."""
    git = _open_git()
    workflow = _workflow(git)
    try:
        workflow.switch_branch(workflow.snapshot(), name, stash=stash)
    except (BranchGuardError, GitError) as e:
        _fail(str(e))
    console.print(f"[green]✅ Switched to {name}[/green]")


# Create stash subcommand group
stash_app = typer.Typer(name="stash", help="Save and restore work in progress", no_args_is_help=True)
app.add_typer(stash_app)


@stash_app.command("save")
def stash_save(
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Stash message"),
    include_untracked: bool = typer.Option(
        False, "--include-untracked", "-u", help="Also stash untracked files"
    ),
) -> None:
    """Stash local changes."""
    git = _open_git()
    try:
        _workflow(git).stash_save(message, include_untracked=include_untracked)
    except GitError as e:
        _fail(str(e))
    console.print("[green]✅ Changes stashed[/green]")


@stash_app.command("list")
def stash_list() -> None:
    """List stash entries."""
    git = _open_git()
    entries = _workflow(git).stash_list()
    if not entries:
        console.print("[dim]No stash entries[/dim]")
    for entry in entries:
        console.print(entry)


@stash_app.command("pop")
def stash_pop(index: int = typer.Argument(0, help="Stash index to apply")) -> None:
    """Apply and drop a stash entry."""
    git = _open_git()
    try:
        _workflow(git).stash_pop(index)
    except GitError as e:
        _fail(str(e))
    console.print(f"[green]✅ Applied stash@{{{index}}}[/green]")


# Create config subcommand group
config_app = typer.Typer(name="config", help="Manage branchguard configuration")
app.add_typer(config_app)


@config_app.command("set-remote")
def set_remote(remote: str = typer.Argument(help="Remote name (e.g., origin)")) -> None:
    """Set the remote used for pushes and backups."""
    set_remote_command(remote)


@config_app.command("set-protected")
def set_protected(branch: str = typer.Argument(help="Protected branch (e.g., main)")) -> None:
    """Set the protected branch."""
    set_protected_command(branch)


@config_app.command("set-capability")
def set_capability(
    name: str = typer.Argument(help="risk_analysis, divergence_analysis or safe_replace"),
    enabled: bool = typer.Option(True, "--on/--off", help="Enable or disable"),
) -> None:
    """Enable or disable a capability."""
    set_capability_command(name, enabled)


@config_app.command("show")
def show(
    format_type: str = typer.Option("table", "--format", help="Output format: table or json"),
) -> None:
    """Show current configuration."""
    show_config_command(format_type)


@app.command()
def version() -> None:
    """Show version information."""
    print(f"Branchguard version: [bold]{__version__}[/bold]")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
