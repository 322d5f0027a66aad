"""Point-in-time view of the repository state."""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console

from .git_basic import GitBasicInterface


@dataclass(frozen=True)
class RepositorySnapshot:
    """
    Current branch, cleanliness and upstream position of a working copy.

    A snapshot is a value: it is never refreshed in place. Anything that moves refs
    or touches the work tree makes it stale and the caller captures a new one.
    """

    repo_root: str
    branch: str
    is_dirty: bool
    has_unpushed: bool
    upstream: Optional[str] = None
    ahead: int = 0
    behind: int = 0

    @property
    def is_detached(self) -> bool:
        """Whether HEAD is detached."""
        return self.branch == "HEAD"

    @property
    def has_upstream(self) -> bool:
        """Whether the current branch tracks a remote branch."""
        return self.upstream is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return asdict(self)

    @classmethod
    def capture(cls, git: GitBasicInterface) -> "RepositorySnapshot":
        """Read the current state through the git gateway. Pure read."""
        branch = git.get_current_branch()
        dirty = git.is_dirty()

        upstream = None if branch == "HEAD" else git.get_upstream(branch)
        ahead = behind = 0
        if upstream:
            ahead, behind = git.count_ahead_behind(branch, upstream)
            has_unpushed = ahead > 0
        elif branch != "HEAD":
            # No tracking branch: anything not on a remote counts as unpushed
            has_unpushed = git.count_unpushed(branch) > 0
        else:
            has_unpushed = False

        return cls(
            repo_root=str(git.repo_path),
            branch=branch,
            is_dirty=dirty,
            has_unpushed=has_unpushed,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
        )


def capture_snapshot(
    repo_path: Optional[Path] = None, console: Optional[Console] = None
) -> RepositorySnapshot:
    """
    Capture a snapshot of the repository containing repo_path (default: cwd).

    Raises:
        NotARepository: If repo_path is not inside a git work tree
    """
    git = GitBasicInterface(repo_path=repo_path, console=console)
    return RepositorySnapshot.capture(git)
