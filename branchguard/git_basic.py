"""Core git operations interface."""

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from rich.console import Console

from .commit import Commit


class GitError(Exception):
    """Custom exception for git operation errors."""

    pass


class NotARepository(GitError):
    """The working directory is not inside a git work tree."""

    pass


@dataclass
class MergeSimulation:
    """Result of a non-mutating merge-tree run."""

    has_conflicts: bool
    conflicted_files: List[str] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)
    tree_oid: str = ""


class GitBasicInterface:
    """
    Core git operations interface providing basic git functionality.

    This class is the only place that shells out to git. Every analyzer and the
    replace orchestrator consume it, which lets tests swap in a recording fake.
    """

    def __init__(
        self,
        repo_path: Optional[Path] = None,
        console: Optional[Console] = None,
        verbose: bool = False,
    ):
        """Initialize GitBasicInterface with repository path and console."""
        self.console = console or Console()
        self.verbose = verbose

        start_path = Path(repo_path) if repo_path else Path.cwd()
        try:
            result = subprocess.run(
                ["git", "rev-parse", "--show-toplevel"],
                cwd=start_path,
                capture_output=True,
                text=True,
            )
        except (FileNotFoundError, NotADirectoryError) as e:
            raise NotARepository(f"Not a git repository: {start_path}") from e

        if result.returncode != 0 or not result.stdout.strip():
            raise NotARepository(f"Not a git repository: {start_path}")

        self.repo_path = Path(result.stdout.strip())

    def _trace(self, args: List[str]) -> None:
        if self.verbose:
            self.console.print(f"[dim cyan]Running: git {' '.join(args)}[/dim cyan]")

    def run_command(self, args: List[str]) -> str:
        """Execute git command and return stdout."""
        self._trace(args)
        try:
            result = subprocess.run(
                ["git"] + args, cwd=self.repo_path, capture_output=True, text=True, check=True
            )
            return result.stdout.strip()
        except subprocess.CalledProcessError as e:
            raise GitError(f"Git command failed: git {' '.join(args)}\nError: {e.stderr}") from e

    def run_command_result(self, args: List[str]) -> subprocess.CompletedProcess:
        """Execute git command without raising; caller inspects the return code."""
        self._trace(args)
        return subprocess.run(["git"] + args, cwd=self.repo_path, capture_output=True, text=True)

    def run_command_binary_safe(self, args: List[str], allow_failure: bool = False) -> str:
        """Execute git command and return stdout, safely handling binary content."""
        self._trace(args)
        try:
            result = subprocess.run(
                ["git"] + args, cwd=self.repo_path, capture_output=True, check=not allow_failure
            )

            # For merge-tree, exit code 1 means conflicts exist (not an error)
            if allow_failure and result.returncode == 1 and args[0] == "merge-tree":
                pass
            elif allow_failure and result.returncode != 0:
                try:
                    stderr = result.stderr.decode("utf-8") if result.stderr else ""
                except UnicodeDecodeError:
                    stderr = str(result.stderr) if result.stderr else ""
                raise GitError(f"Git command failed: git {' '.join(args)}\nError: {stderr}")

            try:
                return result.stdout.decode("utf-8").strip()
            except UnicodeDecodeError:
                # merge-tree output with binary files still has parseable text parts
                return result.stdout.decode("utf-8", errors="replace").strip()

        except subprocess.CalledProcessError as e:
            try:
                stderr = e.stderr.decode("utf-8") if e.stderr else ""
            except UnicodeDecodeError:
                stderr = str(e.stderr) if e.stderr else ""
            raise GitError(f"Git command failed: git {' '.join(args)}\nError: {stderr}") from e

    # Branch Management Operations
    def check_branch_exists(self, branch: str) -> bool:
        """Check if branch exists locally."""
        try:
            self.run_command(["rev-parse", "--verify", f"refs/heads/{branch}"])
            return True
        except GitError:
            return False

    def check_remote_branch_exists(self, branch: str, remote: str = "origin") -> bool:
        """Check if branch exists on the remote (as a remote-tracking ref)."""
        try:
            self.run_command(["rev-parse", "--verify", f"refs/remotes/{remote}/{branch}"])
            return True
        except GitError:
            return False

    def get_current_branch(self) -> str:
        """Get the name of the current branch ("HEAD" when detached)."""
        try:
            return self.run_command(["rev-parse", "--abbrev-ref", "HEAD"])
        except GitError as e:
            # No commits yet: HEAD names a branch that does not exist
            result = self.run_command_result(["symbolic-ref", "--short", "HEAD"])
            if result.returncode == 0 and result.stdout.strip():
                return result.stdout.strip()
            raise GitError(f"Failed to get current branch: {e}") from e

    def list_branches(self, remote: bool = False) -> List[str]:
        """List local (or remote-tracking) branch names."""
        args = ["branch", "--format=%(refname:short)"]
        if remote:
            args.insert(1, "-r")
        output = self.run_command(args)
        return [line.strip() for line in output.split("\n") if line.strip()]

    def rev_parse(self, ref: str) -> str:
        """Resolve a ref to its full SHA."""
        return self.run_command(["rev-parse", "--verify", f"{ref}^{{commit}}"])

    def is_dirty(self) -> bool:
        """Whether the work tree or index has uncommitted changes."""
        return bool(self.run_command(["status", "--porcelain"]))

    def get_upstream(self, branch: str) -> Optional[str]:
        """Return the upstream of branch (e.g. "origin/main"), or None if unset."""
        result = self.run_command_result(
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", f"{branch}@{{upstream}}"]
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def count_ahead_behind(self, ref: str, other: str) -> Tuple[int, int]:
        """
        Count commits of ref relative to other.

        Returns:
            (ahead, behind) where ahead is the number of commits reachable from ref
            but not from other, and behind is the reverse.
        """
        output = self.run_command(["rev-list", "--left-right", "--count", f"{ref}...{other}"])
        parts = output.split()
        if len(parts) != 2:
            raise GitError(f"Unexpected rev-list output for {ref}...{other}: {output!r}")
        return int(parts[0]), int(parts[1])

    def count_unpushed(self, branch: str) -> int:
        """Count commits on branch that are not on any remote-tracking ref (0 if unborn)."""
        if not self.check_branch_exists(branch):
            return 0
        output = self.run_command(["rev-list", "--count", branch, "--not", "--remotes"])
        return int(output or 0)

    def get_merge_base(self, ref: str, other: str) -> Optional[str]:
        """Return the merge-base SHA, or None when the histories are unrelated."""
        result = self.run_command_result(["merge-base", ref, other])
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
        # merge-base exits 1 with no output when there is no common ancestor
        if result.returncode == 1 and not result.stderr.strip():
            return None
        raise GitError(
            f"Git command failed: git merge-base {ref} {other}\nError: {result.stderr}"
        )

    # Diff Operations
    def diff_names(
        self,
        base: str,
        head: str,
        diff_filter: Optional[str] = None,
        symmetric: bool = True,
    ) -> List[str]:
        """
        List paths changed between two refs.

        Args:
            base: Reference side of the comparison
            head: Side whose changes are listed
            diff_filter: Optional git --diff-filter value (e.g. "D" for deletions)
            symmetric: Use base...head (changes on head since the merge-base)
                instead of a direct tree comparison
        """
        args = ["diff", "--name-only", "--no-renames"]
        if diff_filter:
            args.append(f"--diff-filter={diff_filter}")
        args.append(f"{base}...{head}" if symmetric else base)
        if not symmetric:
            args.append(head)
        output = self.run_command(args)
        return [line.strip() for line in output.split("\n") if line.strip()]

    def diff_file(self, base: str, head: str, path: str) -> str:
        """Unified diff of a single path for base...head."""
        return self.run_command_binary_safe(
            ["diff", "--no-color", "--no-renames", f"{base}...{head}", "--", path]
        )

    def show_file(self, ref: str, path: str) -> Optional[str]:
        """Return the content of path at ref, or None if it does not exist there."""
        result = self.run_command_result(["show", f"{ref}:{path}"])
        if result.returncode != 0:
            return None
        return result.stdout

    def simulate_merge(self, base: str, ours: str, theirs: str) -> MergeSimulation:
        """Simulate merging theirs into ours with git merge-tree (no refs touched)."""
        output = self.run_command_binary_safe(
            [
                "merge-tree",
                "--write-tree",
                "--name-only",
                "--messages",
                f"--merge-base={base}",
                ours,
                theirs,
            ],
            allow_failure=True,
        )
        return parse_merge_tree_output(output)

    # Commit Operations
    def get_commits(self, revision_range: str, limit: Optional[int] = None) -> List[Commit]:
        """Get commits in a revision range (e.g. "main..feature"), newest first."""
        args = ["log", revision_range, "--format=%h|%an|%ci|%s"]
        if limit:
            args.insert(2, f"--max-count={limit}")
        log_output = self.run_command(args)

        commits = []
        for line in log_output.split("\n"):
            if not line.strip():
                continue

            parts = line.split("|", 3)
            if len(parts) >= 4:
                sha, author, date, message = parts
                commits.append(Commit(sha=sha, message=message, date=date, author=author))

        return commits

    # Mutating Operations
    def fetch(self, remote: str = "origin") -> None:
        """Fetch from remote, pruning deleted branches."""
        self.run_command(["fetch", remote, "--prune"])

    def checkout(self, branch: str) -> None:
        """Check out an existing branch."""
        self.run_command(["checkout", branch])

    def create_branch(self, name: str, start_point: Optional[str] = None) -> None:
        """Create a branch without switching to it."""
        args = ["branch", name]
        if start_point:
            args.append(start_point)
        self.run_command(args)

    def delete_branch(self, name: str, force: bool = False) -> None:
        """Delete a local branch."""
        self.run_command(["branch", "-D" if force else "-d", name])

    def delete_remote_branch(self, name: str, remote: str = "origin") -> None:
        """Delete a branch on the remote."""
        self.run_command(["push", remote, "--delete", name])

    def push_branch(self, name: str, remote: str = "origin", set_upstream: bool = False) -> None:
        """Push a branch to the remote."""
        args = ["push"]
        if set_upstream:
            args.append("-u")
        args.extend([remote, f"refs/heads/{name}:refs/heads/{name}"])
        self.run_command(args)

    def force_push_with_lease(
        self,
        source_ref: str,
        target_branch: str,
        expected_sha: Optional[str],
        remote: str = "origin",
    ) -> None:
        """
        Point remote target_branch at source_ref, only if the remote still is at expected_sha.

        An empty expected_sha means the remote branch must not exist yet.
        """
        lease = f"--force-with-lease=refs/heads/{target_branch}:{expected_sha or ''}"
        self.run_command(["push", lease, remote, f"{source_ref}:refs/heads/{target_branch}"])

    def reset_hard(self, ref: str) -> None:
        """Hard-reset the current branch to ref."""
        self.run_command(["reset", "--hard", ref])

    def merge(self, branch: str, no_ff: bool = False) -> int:
        """Merge branch into the current branch and return git's exit code."""
        args = ["merge", "--no-edit"]
        if no_ff:
            args.append("--no-ff")
        args.append(branch)
        return self.run_command_result(args).returncode

    def abort_merge(self) -> None:
        """Abort an in-progress merge."""
        self.run_command(["merge", "--abort"])

    def stage_all(self) -> None:
        """Stage every change in the work tree."""
        self.run_command(["add", "-A"])

    def commit(self, message: str) -> str:
        """Commit staged changes and return the new HEAD SHA."""
        self.run_command(["commit", "-m", message])
        return self.rev_parse("HEAD")

    def push(self, branch: str, remote: str = "origin", set_upstream: bool = False) -> None:
        """Push branch to remote."""
        args = ["push"]
        if set_upstream:
            args.append("-u")
        args.extend([remote, branch])
        self.run_command(args)

    def stash_save(self, message: Optional[str] = None, include_untracked: bool = False) -> None:
        """Stash work tree changes."""
        args = ["stash", "push"]
        if include_untracked:
            args.append("--include-untracked")
        if message:
            args.extend(["-m", message])
        self.run_command(args)

    def stash_list(self) -> List[str]:
        """List stash entries."""
        output = self.run_command(["stash", "list"])
        return [line for line in output.split("\n") if line.strip()]

    def stash_pop(self, index: int = 0) -> None:
        """Apply and drop a stash entry."""
        self.run_command(["stash", "pop", f"stash@{{{index}}}"])


def parse_merge_tree_output(merge_tree_output: str) -> MergeSimulation:
    """
    Parse `git merge-tree --write-tree --name-only --messages` output.

    The first line is the tree OID, followed by conflicted file names, then a blank
    line and informational messages.
    """
    if not merge_tree_output.strip():
        return MergeSimulation(has_conflicts=False)

    lines = merge_tree_output.strip().split("\n")
    tree_oid = lines[0].strip()

    conflicted_files: List[str] = []
    messages: List[str] = []

    current_section = "files"
    for line in lines[1:]:
        if not line.strip():
            current_section = "messages"
            continue

        if current_section == "files":
            path = line.strip()
            if path not in conflicted_files:
                conflicted_files.append(path)
        else:
            messages.append(line)

    has_conflicts = bool(conflicted_files) or any(
        message.startswith("CONFLICT") for message in messages
    )

    return MergeSimulation(
        has_conflicts=has_conflicts,
        conflicted_files=conflicted_files,
        messages=messages,
        tree_oid=tree_oid,
    )
