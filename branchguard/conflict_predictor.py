"""Merge conflict prediction using git merge-tree."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .errors import NoCommonAncestor
from .git_basic import GitBasicInterface, GitError


@dataclass(frozen=True)
class ConflictPrediction:
    """Whether merging source into target would stop on textual conflicts."""

    has_conflicts: bool
    affected_files: Tuple[str, ...] = ()
    conflicted_files: Tuple[str, ...] = ()
    merge_base: str = ""
    simulated: bool = True
    messages: Tuple[str, ...] = field(default=())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_conflicts": self.has_conflicts,
            "affected_files": list(self.affected_files),
            "conflicted_files": list(self.conflicted_files),
            "merge_base": self.merge_base,
            "simulated": self.simulated,
            "messages": list(self.messages),
        }


class ConflictPredictor:
    """
    Simulates a merge non-destructively.

    The simulation runs `git merge-tree --write-tree` against the merge base, so no
    ref, index or work tree file is touched.
    """

    def __init__(self, git: GitBasicInterface, verbose: bool = False):
        self.git = git
        self.console = git.console
        self.verbose = verbose

    def predict(self, source: str, target: str) -> ConflictPrediction:
        """
        Predict conflicts for merging source into target.

        Raises:
            NoCommonAncestor: If the branches have unrelated histories
            GitError: If the refs cannot be read
        """
        merge_base = self.git.get_merge_base(source, target)
        if merge_base is None:
            raise NoCommonAncestor(source, target)

        if self.verbose:
            self.console.print(f"[dim]Merge base of {source} and {target}: {merge_base[:8]}[/dim]")

        affected = self._files_changed_on_both_sides(merge_base, source, target)

        try:
            simulation = self.git.simulate_merge(merge_base, target, source)
        except GitError as e:
            # Older git without merge-tree --write-tree: overlap is the best signal left
            if self.verbose:
                self.console.print(f"[dim yellow]Merge simulation unavailable: {e}[/dim yellow]")
            return ConflictPrediction(
                has_conflicts=bool(affected),
                affected_files=tuple(affected),
                merge_base=merge_base,
                simulated=False,
            )

        return ConflictPrediction(
            has_conflicts=simulation.has_conflicts,
            affected_files=tuple(affected),
            conflicted_files=tuple(simulation.conflicted_files),
            merge_base=merge_base,
            simulated=True,
            messages=tuple(simulation.messages),
        )

    def _files_changed_on_both_sides(self, merge_base: str, source: str, target: str) -> List[str]:
        source_changes = set(self.git.diff_names(merge_base, source, symmetric=False))
        target_changes = set(self.git.diff_names(merge_base, target, symmetric=False))
        return sorted(source_changes & target_changes)
