"""Error taxonomy for the analysis and replace engine."""

from typing import Optional


class BranchGuardError(Exception):
    """Base class for engine errors (git command failures raise GitError instead)."""

    pass


class NoCommonAncestor(BranchGuardError):
    """The two branches have unrelated histories; merging is blocked."""

    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target
        super().__init__(f"'{source}' and '{target}' have no common ancestor")


class InvalidConfirmation(BranchGuardError):
    """The user declined, or typed a phrase that did not match exactly."""

    pass


class InvalidStateTransition(BranchGuardError):
    """A replace step was invoked out of order."""

    pass


class UnsafeReplace(BranchGuardError):
    """A replace would discard work that is neither backed up nor shown to the user."""

    pass


class ReplaceStepError(BranchGuardError):
    """
    A replace step failed.

    Attributes:
        step: The step that failed
        last_completed: The last step that completed before the failure
        backup_branch: Name of the backup branch if it was created, else None
    """

    def __init__(
        self,
        message: str,
        step: str,
        last_completed: str,
        backup_branch: Optional[str] = None,
    ):
        self.step = step
        self.last_completed = last_completed
        self.backup_branch = backup_branch
        super().__init__(message)


class BackupFailed(ReplaceStepError):
    """Creating or publishing the backup branch failed; nothing destructive ran."""

    pass


class RemoteRejected(ReplaceStepError):
    """The lease check failed or the remote refused the forced update."""

    pass


class LocalUpdateFailed(ReplaceStepError):
    """Checking out or resetting the local target branch failed."""

    pass


class CleanupFailed(ReplaceStepError):
    """Deleting the source branch failed. The replace itself is complete."""

    pass
