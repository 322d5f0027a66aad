"""Divergence measurement and the merge-vs-replace recommendation."""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from .git_basic import GitBasicInterface

# Recommendation thresholds. Fixed on purpose; post-process the raw counts for others.
MAX_TOTAL_DIVERGENCE = 50
MAX_BEHIND = 30
MAX_AHEAD_RATIO = 3
MIN_AHEAD_FOR_RATIO = 20
MAX_STRUCTURAL_CHANGES = 20


def recommend(ahead: int, behind: int, added: int, deleted: int) -> Tuple[bool, Tuple[str, ...]]:
    """
    Decide whether replacing the target with the source is preferable to merging.

    Each rule is independent; any one triggering recommends a replace and
    contributes its reason, in rule order.

    Returns:
        (suggest_replace, reasons)
    """
    reasons = []

    total = ahead + behind
    if total > MAX_TOTAL_DIVERGENCE:
        reasons.append(
            f"Branches have diverged by {total} commits (more than {MAX_TOTAL_DIVERGENCE})"
        )

    if behind > MAX_BEHIND and ahead > behind:
        reasons.append(
            f"Source is {behind} commits behind (more than {MAX_BEHIND}) "
            f"but even further ahead ({ahead})"
        )

    ratio = ahead / behind if behind > 0 else ahead
    if ratio > MAX_AHEAD_RATIO and ahead > MIN_AHEAD_FOR_RATIO:
        reasons.append(
            f"Source is {ahead} commits ahead, {ratio:.1f}x its {behind} behind "
            f"(ratio above {MAX_AHEAD_RATIO} with more than {MIN_AHEAD_FOR_RATIO} ahead)"
        )

    structural = added + deleted
    if structural > MAX_STRUCTURAL_CHANGES:
        reasons.append(
            f"{added} files added and {deleted} deleted ({structural} structural changes, "
            f"more than {MAX_STRUCTURAL_CHANGES})"
        )

    return bool(reasons), tuple(reasons)


@dataclass(frozen=True)
class DivergenceReport:
    """
    Commit and file divergence of source relative to target.

    ahead is the number of commits on source missing from target, behind the number
    on target missing from source. suggest_replace and reasons derive from the four
    counts only, so equal counts always produce equal reports.
    """

    source: str
    target: str
    ahead: int
    behind: int
    added_files: int
    deleted_files: int
    suggest_replace: bool
    reasons: Tuple[str, ...]

    @classmethod
    def from_counts(
        cls, source: str, target: str, ahead: int, behind: int, added: int, deleted: int
    ) -> "DivergenceReport":
        suggest_replace, reasons = recommend(ahead, behind, added, deleted)
        return cls(
            source=source,
            target=target,
            ahead=ahead,
            behind=behind,
            added_files=added,
            deleted_files=deleted,
            suggest_replace=suggest_replace,
            reasons=reasons,
        )

    @property
    def total(self) -> int:
        return self.ahead + self.behind

    @property
    def is_diverged(self) -> bool:
        """Both sides have commits the other lacks."""
        return self.ahead > 0 and self.behind > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "ahead": self.ahead,
            "behind": self.behind,
            "added_files": self.added_files,
            "deleted_files": self.deleted_files,
            "suggest_replace": self.suggest_replace,
            "reasons": list(self.reasons),
        }


class DivergenceAnalyzer:
    """Counts commits and structural file changes between two branches."""

    def __init__(self, git: GitBasicInterface, verbose: bool = False):
        self.git = git
        self.console = git.console
        self.verbose = verbose

    def analyze(self, source: str, target: str) -> DivergenceReport:
        """
        Measure how far source has drifted from target.

        Raises:
            GitError: If either ref cannot be resolved
        """
        ahead, behind = self.git.count_ahead_behind(source, target)
        # Direct tree comparison: works for unrelated histories too
        added = len(self.git.diff_names(target, source, diff_filter="A", symmetric=False))
        deleted = len(self.git.diff_names(target, source, diff_filter="D", symmetric=False))

        if self.verbose:
            self.console.print(
                f"[dim]{source} vs {target}: {ahead} ahead, {behind} behind, "
                f"+{added}/-{deleted} files[/dim]"
            )

        return DivergenceReport.from_counts(source, target, ahead, behind, added, deleted)
