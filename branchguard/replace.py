"""Guarded replacement of a branch with another branch.

The replace runs as a strictly linear state machine::

    IDLE -> IMPACT_ANALYZED -> CONFIRMED -> BACKUP_CREATED -> REMOTE_OVERWRITTEN
         -> LOCAL_RESET -> (SOURCE_CLEANED) -> DONE

Each step is a method that only runs from its predecessor state, so a caller
(or a test) can drive it one step at a time. A failing step raises and leaves
the state where it was; nothing is undone and nothing is retried. The backup
branch is the recovery path and is never deleted here.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .commit import Commit
from .errors import (
    BackupFailed,
    CleanupFailed,
    InvalidConfirmation,
    InvalidStateTransition,
    LocalUpdateFailed,
    RemoteRejected,
    UnsafeReplace,
)
from .git_basic import GitBasicInterface, GitError


class ReplaceState(str, Enum):
    """States of a replace operation, in order."""

    IDLE = "idle"
    IMPACT_ANALYZED = "impact_analyzed"
    CONFIRMED = "confirmed"
    BACKUP_CREATED = "backup_created"
    REMOTE_OVERWRITTEN = "remote_overwritten"
    LOCAL_RESET = "local_reset"
    SOURCE_CLEANED = "source_cleaned"
    DONE = "done"


def confirmation_phrase(target: str) -> str:
    """The exact text a user must type to allow replacing target."""
    return f"REPLACE {target}"


def backup_branch_name(target: str, now: datetime) -> str:
    """<target>-backup-<UTC timestamp>."""
    return f"{target}-backup-{now.astimezone(timezone.utc):%Y%m%d-%H%M%S}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ImpactAnalysis:
    """What a replace would throw away and bring in."""

    source_sha: str
    target_sha: str
    remote_target_sha: Optional[str]
    commits_lost: List[Commit] = field(default_factory=list)
    commits_gained: List[Commit] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_sha": self.source_sha,
            "target_sha": self.target_sha,
            "remote_target_sha": self.remote_target_sha,
            "commits_lost": [commit.to_dict() for commit in self.commits_lost],
            "commits_gained": [commit.to_dict() for commit in self.commits_gained],
        }


@dataclass
class ReplaceOperation:
    """Progress record of one replace request. Discarded when the request ends."""

    source: str
    target: str
    remote: str
    backup_branch: str
    state: ReplaceState = ReplaceState.IDLE
    completed_steps: List[ReplaceState] = field(default_factory=list)
    impact: Optional[ImpactAnalysis] = None
    cleanup_error: Optional[CleanupFailed] = None

    @property
    def last_completed_step(self) -> ReplaceState:
        """
        The last repository-changing step that succeeded.

        Before any such step this is IMPACT_ANALYZED once the impact was read,
        otherwise IDLE. Confirmation is a gate, not a step.
        """
        if self.completed_steps:
            return self.completed_steps[-1]
        if self.impact is not None:
            return ReplaceState.IMPACT_ANALYZED
        return ReplaceState.IDLE

    @property
    def backup_exists(self) -> bool:
        return ReplaceState.BACKUP_CREATED in self.completed_steps

    @property
    def is_done(self) -> bool:
        return self.state == ReplaceState.DONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "remote": self.remote,
            "backup_branch": self.backup_branch,
            "state": self.state.value,
            "completed_steps": [step.value for step in self.completed_steps],
            "last_completed_step": self.last_completed_step.value,
            "cleanup_error": str(self.cleanup_error) if self.cleanup_error else None,
        }


class ReplacePrompter:
    """
    Answers the questions a replace asks.

    The CLI implements this with interactive prompts; tests pass canned answers.
    """

    def confirm_replace(self, operation: ReplaceOperation) -> bool:
        raise NotImplementedError

    def typed_phrase(self, operation: ReplaceOperation) -> str:
        raise NotImplementedError

    def confirm_cleanup(self, operation: ReplaceOperation) -> bool:
        raise NotImplementedError


class ReplaceOrchestrator:
    """Backs up target, then overwrites it (remote first, then local) with source."""

    def __init__(
        self,
        git: GitBasicInterface,
        source: str,
        target: str,
        remote: str = "origin",
        protected_branch: str = "main",
        clock: Callable[[], datetime] = _utc_now,
        verbose: bool = False,
    ):
        if source == target:
            raise ValueError("Source and target must be different branches")

        self.git = git
        self.console = git.console
        self.protected_branch = protected_branch
        self.verbose = verbose
        self.operation = ReplaceOperation(
            source=source,
            target=target,
            remote=remote,
            backup_branch=backup_branch_name(target, clock()),
        )

    @property
    def state(self) -> ReplaceState:
        return self.operation.state

    @property
    def can_cleanup(self) -> bool:
        """Source deletion is offered only when source is not the protected branch."""
        return self.operation.source != self.protected_branch

    def _require(self, *states: ReplaceState) -> None:
        if self.operation.state not in states:
            expected = " or ".join(state.value for state in states)
            raise InvalidStateTransition(
                f"Replace is in state '{self.operation.state.value}', expected {expected}"
            )

    def _advance(self, state: ReplaceState, record_step: bool = True) -> None:
        self.operation.state = state
        if record_step:
            self.operation.completed_steps.append(state)
        if self.verbose:
            self.console.print(f"[dim]Replace step completed: {state.value}[/dim]")

    def _resolve(self, branch: str) -> str:
        """Prefer the local branch, fall back to its remote-tracking ref."""
        if self.git.check_branch_exists(branch):
            return self.git.rev_parse(f"refs/heads/{branch}")
        return self.git.rev_parse(f"refs/remotes/{self.operation.remote}/{branch}")

    def _impact(self) -> ImpactAnalysis:
        if self.operation.impact is None:
            raise InvalidStateTransition("Replace has no impact analysis")
        return self.operation.impact

    def _resolve_target(self) -> Tuple[str, Optional[str]]:
        """
        Return (tip to back up, remote tip to lease on) for the target.

        The remote tip wins when it exists. A local target that is behind the
        remote is accepted; the local reset moves it forward.

        Raises:
            UnsafeReplace: If the local target has commits the remote does not
        """
        op = self.operation
        local_sha = None
        if self.git.check_branch_exists(op.target):
            local_sha = self.git.rev_parse(f"refs/heads/{op.target}")
        remote_sha = None
        if self.git.check_remote_branch_exists(op.target, op.remote):
            remote_sha = self.git.rev_parse(f"refs/remotes/{op.remote}/{op.target}")

        if local_sha is None and remote_sha is None:
            raise UnsafeReplace(f"Target branch '{op.target}' does not exist")
        if local_sha and remote_sha and local_sha != remote_sha:
            local_only, _ = self.git.count_ahead_behind(local_sha, remote_sha)
            if local_only:
                raise UnsafeReplace(
                    f"Local {op.target} has {local_only} commit(s) not on {op.remote}; "
                    f"push or drop them before replacing"
                )
        return remote_sha or local_sha, remote_sha

    def analyze_impact(self) -> ImpactAnalysis:
        """
        List commits lost from target and gained from source. Pure read.

        Raises:
            UnsafeReplace: If uncommitted changes or unpushed target commits would
                be discarded by the replace
        """
        self._require(ReplaceState.IDLE, ReplaceState.IMPACT_ANALYZED)
        op = self.operation

        if self.git.is_dirty():
            raise UnsafeReplace(
                "Uncommitted changes present; commit or stash them before replacing"
            )

        source_sha = self._resolve(op.source)
        target_sha, remote_target_sha = self._resolve_target()

        impact = ImpactAnalysis(
            source_sha=source_sha,
            target_sha=target_sha,
            remote_target_sha=remote_target_sha,
            commits_lost=self.git.get_commits(f"{source_sha}..{target_sha}"),
            commits_gained=self.git.get_commits(f"{target_sha}..{source_sha}"),
        )
        op.impact = impact
        self._advance(ReplaceState.IMPACT_ANALYZED, record_step=False)
        return impact

    def confirm(self, approved: bool, typed_phrase: str) -> None:
        """
        Gate the destructive steps behind two independent affirmations.

        Raises:
            InvalidConfirmation: If the user declined or the phrase is not exactly
                "REPLACE <target>". The operation returns to IDLE.
        """
        self._require(ReplaceState.IMPACT_ANALYZED)
        expected = confirmation_phrase(self.operation.target)

        if not approved or typed_phrase != expected:
            self.operation.state = ReplaceState.IDLE
            self.operation.impact = None
            if not approved:
                raise InvalidConfirmation("Replace cancelled by user")
            raise InvalidConfirmation(
                f"Confirmation phrase did not match; expected exactly '{expected}'"
            )

        self._advance(ReplaceState.CONFIRMED, record_step=False)

    def create_backup(self) -> str:
        """
        Create and publish <target>-backup-<timestamp> at the target tip.

        Raises:
            BackupFailed: If the local branch or its push fails
        """
        self._require(ReplaceState.CONFIRMED)
        impact = self._impact()
        op = self.operation

        local_created = False
        try:
            self.git.create_branch(op.backup_branch, impact.target_sha)
            local_created = True
            self.git.push_branch(op.backup_branch, op.remote)
        except GitError as e:
            raise BackupFailed(
                f"Could not create backup branch {op.backup_branch}: {e}",
                step=ReplaceState.BACKUP_CREATED.value,
                last_completed=op.last_completed_step.value,
                backup_branch=op.backup_branch if local_created else None,
            ) from e

        self._advance(ReplaceState.BACKUP_CREATED)
        return op.backup_branch

    def overwrite_remote(self) -> None:
        """
        Force-update the remote target to the source tip, guarded by a lease.

        Raises:
            RemoteRejected: If the remote target moved since it was observed or the
                push was denied
        """
        self._require(ReplaceState.BACKUP_CREATED)
        impact = self._impact()
        op = self.operation

        try:
            self.git.force_push_with_lease(
                impact.source_sha, op.target, impact.remote_target_sha, op.remote
            )
        except GitError as e:
            if "stale info" in str(e):
                reason = "remote moved since it was last fetched"
            else:
                reason = "push denied"
            raise RemoteRejected(
                f"Remote rejected update of {op.remote}/{op.target} ({reason}): {e}",
                step=ReplaceState.REMOTE_OVERWRITTEN.value,
                last_completed=op.last_completed_step.value,
                backup_branch=op.backup_branch,
            ) from e

        self._advance(ReplaceState.REMOTE_OVERWRITTEN)

    def _local_update_failed(self, reason: str) -> LocalUpdateFailed:
        op = self.operation
        return LocalUpdateFailed(
            f"Remote {op.target} was replaced but the local branch could not be updated: {reason}",
            step=ReplaceState.LOCAL_RESET.value,
            last_completed=op.last_completed_step.value,
            backup_branch=op.backup_branch,
        )

    def reset_local(self) -> None:
        """
        Check out target and hard-reset it to the updated remote tip.

        Raises:
            LocalUpdateFailed: If the work tree has uncommitted changes, or checkout
                or reset fails
        """
        self._require(ReplaceState.REMOTE_OVERWRITTEN)
        op = self.operation

        try:
            dirty = self.git.is_dirty()
        except GitError as e:
            raise self._local_update_failed(str(e)) from e
        if dirty:
            raise self._local_update_failed("uncommitted changes in the work tree")

        try:
            self.git.checkout(op.target)
            self.git.reset_hard(f"{op.remote}/{op.target}")
        except GitError as e:
            raise self._local_update_failed(str(e)) from e

        self._advance(ReplaceState.LOCAL_RESET)

    def cleanup_source(self, confirmed: bool) -> bool:
        """
        Delete the source branch locally and on the remote.

        Skipped (returns False) when the user did not confirm or source is the
        protected branch.

        Raises:
            CleanupFailed: If a deletion failed; the replace itself is complete
        """
        self._require(ReplaceState.LOCAL_RESET)
        op = self.operation
        if not confirmed or not self.can_cleanup:
            return False

        errors = []
        if self.git.check_branch_exists(op.source):
            try:
                self.git.delete_branch(op.source, force=True)
            except GitError as e:
                errors.append(f"local: {e}")
        if self.git.check_remote_branch_exists(op.source, op.remote):
            try:
                self.git.delete_remote_branch(op.source, op.remote)
            except GitError as e:
                errors.append(f"remote: {e}")

        if errors:
            op.cleanup_error = CleanupFailed(
                f"Replace completed, but deleting {op.source} failed: {'; '.join(errors)}",
                step=ReplaceState.SOURCE_CLEANED.value,
                last_completed=op.last_completed_step.value,
                backup_branch=op.backup_branch,
            )
            raise op.cleanup_error

        self._advance(ReplaceState.SOURCE_CLEANED)
        return True

    def finish(self) -> ReplaceOperation:
        self._require(ReplaceState.LOCAL_RESET, ReplaceState.SOURCE_CLEANED)
        self._advance(ReplaceState.DONE, record_step=False)
        return self.operation

    def execute(self, prompter: ReplacePrompter) -> ReplaceOperation:
        """
        Run the whole replace, asking prompter at each gate.

        Step failures propagate as ReplaceStepError subclasses. A cleanup failure is
        recorded on the operation instead, since the replace already succeeded.
        """
        self.analyze_impact()

        approved = prompter.confirm_replace(self.operation)
        typed = prompter.typed_phrase(self.operation) if approved else ""
        self.confirm(approved, typed)

        self.create_backup()
        self.overwrite_remote()
        self.reset_local()

        if self.can_cleanup and prompter.confirm_cleanup(self.operation):
            try:
                self.cleanup_source(confirmed=True)
            except CleanupFailed:
                pass  # kept on self.operation.cleanup_error

        return self.finish()
