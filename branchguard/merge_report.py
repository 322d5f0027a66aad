"""Composite report for a merge request."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .compatibility import CompatibilityAnalyzer, CompatibilityReport
from .config import Capabilities
from .conflict_predictor import ConflictPrediction, ConflictPredictor
from .divergence import DivergenceAnalyzer, DivergenceReport
from .git_basic import GitBasicInterface
from .snapshot import RepositorySnapshot


@dataclass(frozen=True)
class MergeReport:
    """Everything the shell shows before asking whether to merge or replace."""

    source: str
    target: str
    snapshot: RepositorySnapshot
    compatibility: Optional[CompatibilityReport]
    conflicts: Optional[ConflictPrediction]
    divergence: Optional[DivergenceReport]

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts and self.conflicts.has_conflicts)

    @property
    def has_issues(self) -> bool:
        return bool(self.compatibility and self.compatibility.has_issues)

    @property
    def recommendation(self) -> str:
        """
        "replace" when divergence recommends it, "review" when conflicts or risk
        signals exist, otherwise "merge".
        """
        if self.divergence and self.divergence.suggest_replace:
            return "replace"
        if self.has_conflicts or self.has_issues:
            return "review"
        return "merge"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "snapshot": self.snapshot.to_dict(),
            "compatibility": self.compatibility.to_dict() if self.compatibility else None,
            "conflicts": self.conflicts.to_dict() if self.conflicts else None,
            "divergence": self.divergence.to_dict() if self.divergence else None,
            "recommendation": self.recommendation,
        }


def build_merge_report(
    git: GitBasicInterface,
    source: str,
    target: str,
    capabilities: Optional[Capabilities] = None,
    verbose: bool = False,
) -> MergeReport:
    """
    Capture a fresh snapshot and run the enabled analyzers for source -> target.

    Conflict prediction always runs because unrelated histories must block the
    merge regardless of capability flags.

    Raises:
        NoCommonAncestor: If the branches have unrelated histories
        GitError: If any git query fails
    """
    capabilities = capabilities or Capabilities()
    snapshot = RepositorySnapshot.capture(git)

    conflicts = ConflictPredictor(git, verbose=verbose).predict(source, target)

    compatibility = None
    if capabilities.risk_analysis:
        compatibility = CompatibilityAnalyzer(git, verbose=verbose).analyze(source, target)

    divergence = None
    if capabilities.divergence_analysis:
        divergence = DivergenceAnalyzer(git, verbose=verbose).analyze(source, target)

    return MergeReport(
        source=source,
        target=target,
        snapshot=snapshot,
        compatibility=compatibility,
        conflicts=conflicts,
        divergence=divergence,
    )
