"""Compatibility analysis: predict whether merging source into target may break things."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .git_basic import GitBasicInterface
from .manifests import MANIFEST_FILES, compare_dependency_versions
from .risk_rules import DEFAULT_RULES, RiskKind, RuleSet, Severity

API_SAMPLE_SIZE = 5


@dataclass(frozen=True)
class RiskSignal:
    """One kind of risk found between two branches, with the paths that triggered it."""

    kind: RiskKind
    files: Tuple[str, ...]
    explanation: str
    details: Tuple[str, ...] = ()
    severity: Severity = Severity.WARNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "files": list(self.files),
            "explanation": self.explanation,
            "details": list(self.details),
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class CompatibilityReport:
    """Ordered risk signals for merging source into target."""

    source: str
    target: str
    signals: Tuple[RiskSignal, ...] = ()
    notes: Tuple[str, ...] = field(default=())

    @property
    def has_issues(self) -> bool:
        return bool(self.signals)

    def signal(self, kind: RiskKind) -> Optional[RiskSignal]:
        """Return the signal of the given kind, if present."""
        for signal in self.signals:
            if signal.kind == kind:
                return signal
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "has_issues": self.has_issues,
            "signals": [signal.to_dict() for signal in self.signals],
            "notes": list(self.notes),
        }


class CompatibilityAnalyzer:
    """
    Runs independent heuristic checks over the changes source would bring into target.

    Every check reads through the git gateway only. Path and line heuristics come
    from a RuleSet so they can be extended without touching this class.
    """

    def __init__(
        self,
        git: GitBasicInterface,
        rules: Optional[RuleSet] = None,
        api_sample_size: int = API_SAMPLE_SIZE,
        verbose: bool = False,
    ):
        self.git = git
        self.console = git.console
        self.rules = rules or DEFAULT_RULES
        self.api_sample_size = api_sample_size
        self.verbose = verbose

    def analyze(self, source: str, target: str) -> CompatibilityReport:
        """
        Build a complete report or raise; never a partial one.

        Raises:
            GitError: If any underlying git query fails
        """
        changed = self.git.diff_names(target, source)
        deleted = self.git.diff_names(target, source, diff_filter="D")

        if self.verbose:
            self.console.print(
                f"[dim]{len(changed)} changed, {len(deleted)} deleted between "
                f"{target} and {source}[/dim]"
            )

        notes: List[str] = []
        checks = [
            self._check_deleted_files(deleted),
            self._check_dependency_manifests(source, target, notes),
            self._check_config_files(changed),
            self._check_api_changes(source, target, changed, deleted),
            self._check_database_changes(changed),
        ]
        signals = tuple(signal for signal in checks if signal is not None)

        return CompatibilityReport(
            source=source, target=target, signals=signals, notes=tuple(notes)
        )

    def _check_deleted_files(self, deleted: List[str]) -> Optional[RiskSignal]:
        risky = []
        details = []
        for path in deleted:
            if self.rules.is_source_file(path):
                risky.append(path)
                details.append(f"{path}: source file removed")
                continue
            rule = self.rules.match(RiskKind.CONFIG_CHANGE, path) or self.rules.match(
                RiskKind.DELETED_FILES, path
            )
            if rule:
                risky.append(path)
                details.append(f"{path}: {rule.description or 'configuration'} removed")

        if not risky:
            return None
        return RiskSignal(
            kind=RiskKind.DELETED_FILES,
            files=tuple(risky),
            explanation=(
                f"{len(risky)} source or configuration file(s) exist on the target "
                "but are deleted by the source branch"
            ),
            details=tuple(details),
        )

    def _check_dependency_manifests(
        self, source: str, target: str, notes: List[str]
    ) -> Optional[RiskSignal]:
        mismatched = []
        details = []
        has_major = False

        for manifest in MANIFEST_FILES:
            source_content = self.git.show_file(source, manifest)
            target_content = self.git.show_file(target, manifest)

            if source_content is None and target_content is None:
                continue
            if source_content is None:
                notes.append(f"{manifest} exists only on {target}")
                continue
            if target_content is None:
                notes.append(f"{manifest} exists only on {source}")
                continue
            if source_content == target_content:
                continue

            mismatched.append(manifest)
            for change in compare_dependency_versions(manifest, source_content, target_content):
                details.append(change.describe())
                has_major = has_major or change.is_major

        if not mismatched:
            return None

        explanation = f"Dependency manifests differ: {', '.join(mismatched)}"
        if has_major:
            explanation += " (includes major version changes)"
        # Major bumps first so they lead the rendered list
        details.sort(key=lambda line: "major version change" not in line)
        return RiskSignal(
            kind=RiskKind.DEPENDENCY_MISMATCH,
            files=tuple(mismatched),
            explanation=explanation,
            details=tuple(details),
            severity=Severity.HIGH if has_major else Severity.WARNING,
        )

    def _check_config_files(self, changed: List[str]) -> Optional[RiskSignal]:
        config_files = [path for path in changed if self.rules.matches(RiskKind.CONFIG_CHANGE, path)]
        if not config_files:
            return None
        return RiskSignal(
            kind=RiskKind.CONFIG_CHANGE,
            files=tuple(config_files),
            explanation=f"{len(config_files)} configuration file(s) changed",
        )

    def _check_api_changes(
        self, source: str, target: str, changed: List[str], deleted: List[str]
    ) -> Optional[RiskSignal]:
        deleted_set = set(deleted)
        sample = [
            path
            for path in changed
            if self.rules.is_source_file(path) and path not in deleted_set
        ][: self.api_sample_size]

        flagged = []
        details = []
        for path in sample:
            declarations = self.rules.find_declarations(self.git.diff_file(target, source, path))
            if declarations:
                flagged.append(path)
                details.extend(f"{path}: {line.strip()}" for line in declarations[:3])

        if not flagged:
            return None
        return RiskSignal(
            kind=RiskKind.API_CHANGE,
            files=tuple(flagged),
            explanation=(
                f"Declarations added or removed in {len(flagged)} file(s) "
                f"(sampled {len(sample)} source files)"
            ),
            details=tuple(details),
        )

    def _check_database_changes(self, changed: List[str]) -> Optional[RiskSignal]:
        db_files = [path for path in changed if self.rules.matches(RiskKind.DATABASE_CHANGE, path)]
        if not db_files:
            return None
        return RiskSignal(
            kind=RiskKind.DATABASE_CHANGE,
            files=tuple(db_files),
            explanation=f"{len(db_files)} migration or schema file(s) changed",
            severity=Severity.HIGH,
        )
