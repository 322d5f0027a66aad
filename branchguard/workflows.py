"""Everyday branch workflows: thin sequences of git calls with a few guardrails."""

from dataclasses import dataclass
from typing import List, Optional

from .config import Capabilities
from .errors import BranchGuardError
from .git_basic import GitBasicInterface
from .replace import ReplaceOrchestrator
from .snapshot import RepositorySnapshot


@dataclass(frozen=True)
class MergeOutcome:
    """Result of running the real merge primitive."""

    source: str
    target: str
    exit_code: int

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class BranchWorkflow:
    """
    One engine for the plain and the guarded flows.

    Capability flags decide which guarded operations are available. Every method
    that depends on repository state takes an explicit RepositorySnapshot; callers
    capture a new one after any method here returns.
    """

    def __init__(
        self,
        git: GitBasicInterface,
        remote: str = "origin",
        protected_branch: str = "main",
        capabilities: Optional[Capabilities] = None,
    ):
        self.git = git
        self.console = git.console
        self.remote = remote
        self.protected_branch = protected_branch
        self.capabilities = capabilities or Capabilities()

    def snapshot(self) -> RepositorySnapshot:
        return RepositorySnapshot.capture(self.git)

    def commit_all(self, message: str) -> str:
        """Stage everything and commit; returns the new commit SHA."""
        if not message.strip():
            raise BranchGuardError("Commit message must not be empty")
        self.git.stage_all()
        return self.git.commit(message)

    def push_current(self, snapshot: RepositorySnapshot) -> None:
        """Push the current branch, setting its upstream on first push."""
        if snapshot.is_detached:
            raise BranchGuardError("Cannot push a detached HEAD")
        self.git.push(snapshot.branch, self.remote, set_upstream=not snapshot.has_upstream)

    def create_branch(self, name: str, start_point: Optional[str] = None, switch: bool = True) -> None:
        if self.git.check_branch_exists(name):
            raise BranchGuardError(f"Branch '{name}' already exists")
        self.git.create_branch(name, start_point)
        if switch:
            self.git.checkout(name)

    def switch_branch(self, snapshot: RepositorySnapshot, name: str, stash: bool = False) -> None:
        """
        Switch to name, optionally stashing local changes first.

        Raises:
            BranchGuardError: If the work tree is dirty and stash is False
        """
        if snapshot.branch == name:
            return
        if snapshot.is_dirty:
            if not stash:
                raise BranchGuardError(
                    f"Uncommitted changes on '{snapshot.branch}'; commit or stash them first"
                )
            self.git.stash_save(f"branchguard: auto-stash before switching to {name}")
        self.git.checkout(name)

    def list_branches(self) -> List[str]:
        return self.git.list_branches()

    def stash_save(self, message: Optional[str] = None, include_untracked: bool = False) -> None:
        self.git.stash_save(message, include_untracked=include_untracked)

    def stash_list(self) -> List[str]:
        return self.git.stash_list()

    def stash_pop(self, index: int = 0) -> None:
        self.git.stash_pop(index)

    def merge(self, snapshot: RepositorySnapshot, source: str, target: str) -> MergeOutcome:
        """
        Check out target and merge source into it.

        Raises:
            BranchGuardError: If the work tree is dirty
        """
        if snapshot.is_dirty:
            raise BranchGuardError("Uncommitted changes present; commit or stash before merging")
        if snapshot.branch != target:
            self.git.checkout(target)
        exit_code = self.git.merge(source)
        return MergeOutcome(source=source, target=target, exit_code=exit_code)

    def start_replace(self, source: str, target: str, verbose: bool = False) -> ReplaceOrchestrator:
        """Create a replace orchestrator if the safe_replace capability is enabled."""
        if not self.capabilities.safe_replace:
            raise BranchGuardError("Branch replacement is disabled (capability safe_replace)")
        return ReplaceOrchestrator(
            self.git,
            source,
            target,
            remote=self.remote,
            protected_branch=self.protected_branch,
            verbose=verbose,
        )
