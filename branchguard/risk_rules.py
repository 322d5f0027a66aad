"""Pattern rules that classify changed paths and diff lines into risk kinds.

The compatibility analyzer never hardcodes a pattern: it asks a ``RuleSet``.
Adding a pattern means building a ``RuleSet`` with one more ``PathRule`` or
``LineRule``; the analyzer's control flow does not change.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple


class RiskKind(str, Enum):
    """Kinds of risk a merge can carry."""

    DELETED_FILES = "deleted_files"
    DEPENDENCY_MISMATCH = "dependency_mismatch"
    CONFIG_CHANGE = "config_change"
    API_CHANGE = "api_change"
    DATABASE_CHANGE = "database_change"


class Severity(str, Enum):
    """How loudly a signal should be presented."""

    WARNING = "warning"
    HIGH = "high"


@dataclass(frozen=True)
class PathRule:
    """A regex matched (case-insensitively) against a repository path."""

    kind: RiskKind
    pattern: str
    description: str = ""

    def matches(self, path: str) -> bool:
        return re.search(self.pattern, path, re.IGNORECASE) is not None


@dataclass(frozen=True)
class LineRule:
    """A regex matched against the text of an added or removed diff line."""

    pattern: str
    description: str = ""

    def matches(self, line: str) -> bool:
        return re.search(self.pattern, line) is not None


SOURCE_EXTENSIONS: FrozenSet[str] = frozenset(
    {
        ".py", ".pyx", ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".vue", ".svelte",
        ".java", ".kt", ".kts", ".scala", ".groovy", ".go", ".rs", ".rb", ".php",
        ".c", ".h", ".cc", ".cpp", ".cxx", ".hpp", ".cs", ".fs", ".swift", ".m", ".mm",
        ".dart", ".ex", ".exs", ".erl", ".clj", ".lua", ".pl", ".pm", ".sh",
    }
)  # fmt: skip


DEFAULT_PATH_RULES: Tuple[PathRule, ...] = (
    # Configuration
    PathRule(
        RiskKind.CONFIG_CHANGE,
        r"\.(json|ya?ml|toml|ini|cfg|conf|config|properties|env)$",
        "configuration file extension",
    ),
    PathRule(RiskKind.CONFIG_CHANGE, r"(^|/)\.env(\.[^/]*)?$", "environment file"),
    PathRule(RiskKind.CONFIG_CHANGE, r"(^|/)[^/]*(config|settings)[^/]*$", "config-like name"),
    PathRule(RiskKind.CONFIG_CHANGE, r"(^|/)(config|conf|settings)/", "config directory"),
    PathRule(RiskKind.CONFIG_CHANGE, r"(^|/)\.[\w-]+rc(\.\w+)?$", "tool rc file"),
    PathRule(RiskKind.CONFIG_CHANGE, r"(^|/)(dockerfile|docker-compose[^/]*)$", "container setup"),
    # Initialization / entry points (only consulted for deletions)
    PathRule(RiskKind.DELETED_FILES, r"(^|/)__init__\.py$", "package initializer"),
    PathRule(
        RiskKind.DELETED_FILES, r"(^|/)(index|main|app|server)\.\w+$", "entry point"
    ),
    PathRule(
        RiskKind.DELETED_FILES, r"(^|/)(setup\.py|manage\.py|makefile)$", "build entry point"
    ),
    # Database
    PathRule(RiskKind.DATABASE_CHANGE, r"(^|/)migrations?/", "migrations directory"),
    PathRule(RiskKind.DATABASE_CHANGE, r"(^|/)[^/]*migration[^/]*$", "migration file"),
    PathRule(RiskKind.DATABASE_CHANGE, r"(^|/)[^/]*schema[^/]*$", "schema file"),
    PathRule(RiskKind.DATABASE_CHANGE, r"\.(sql|ddl|prisma)$", "data definition file"),
    PathRule(RiskKind.DATABASE_CHANGE, r"(^|/)(alembic|flyway|liquibase)/", "migration tool"),
    PathRule(RiskKind.DATABASE_CHANGE, r"(^|/)db/(migrate|schema)", "rails-style db dir"),
)

DEFAULT_DECLARATION_RULES: Tuple[LineRule, ...] = (
    LineRule(
        r"^\s*(export\s+)?(default\s+)?((public|private|protected|internal|static|abstract|"
        r"final|async|pub(\([\w:]+\))?)\s+)*"
        r"(def|class|function|interface|struct|enum|trait|type|func|fn|impl|module|namespace)"
        r"\b\s*[\w(<]",
        "declaration keyword",
    ),
    LineRule(
        r"^\s*(public|protected)\s+[\w<>\[\],.?\s]+\s+\w+\s*\(",
        "public method signature",
    ),
)


@dataclass(frozen=True)
class RuleSet:
    """The set of path and line predicates used by the compatibility analyzer."""

    path_rules: Tuple[PathRule, ...] = DEFAULT_PATH_RULES
    declaration_rules: Tuple[LineRule, ...] = DEFAULT_DECLARATION_RULES
    source_extensions: FrozenSet[str] = field(default=SOURCE_EXTENSIONS)

    def rules_for(self, kind: RiskKind) -> List[PathRule]:
        return [rule for rule in self.path_rules if rule.kind == kind]

    def match(self, kind: RiskKind, path: str) -> Optional[PathRule]:
        """Return the first rule of kind that matches path, if any."""
        for rule in self.rules_for(kind):
            if rule.matches(path):
                return rule
        return None

    def matches(self, kind: RiskKind, path: str) -> bool:
        return self.match(kind, path) is not None

    def is_source_file(self, path: str) -> bool:
        dot = path.rfind(".")
        if dot == -1 or dot < path.rfind("/"):
            return False
        return path[dot:].lower() in self.source_extensions

    def find_declarations(self, diff_text: str) -> List[str]:
        """
        Return added/removed diff lines that look like declarations.

        File headers (``+++``/``---``) are skipped; the leading +/- is kept so the
        caller can tell additions from removals.
        """
        found = []
        for line in diff_text.split("\n"):
            if line.startswith("+++") or line.startswith("---"):
                continue
            if not line.startswith(("+", "-")):
                continue
            body = line[1:]
            if any(rule.matches(body) for rule in self.declaration_rules):
                found.append(line.rstrip())
        return found

    def extended(
        self,
        path_rules: Iterable[PathRule] = (),
        declaration_rules: Iterable[LineRule] = (),
    ) -> "RuleSet":
        """Return a copy with extra rules appended."""
        return RuleSet(
            path_rules=self.path_rules + tuple(path_rules),
            declaration_rules=self.declaration_rules + tuple(declaration_rules),
            source_extensions=self.source_extensions,
        )


DEFAULT_RULES = RuleSet()
