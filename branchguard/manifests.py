"""Dependency manifest parsing and version comparison."""

import json
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from packaging.requirements import InvalidRequirement, Requirement

# Root-level manifests compared between branches
MANIFEST_FILES = (
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "requirements.txt",
    "Pipfile",
    "Pipfile.lock",
    "pyproject.toml",
    "poetry.lock",
    "setup.py",
    "setup.cfg",
    "Gemfile",
    "Gemfile.lock",
    "go.mod",
    "go.sum",
    "Cargo.toml",
    "Cargo.lock",
    "composer.json",
    "composer.lock",
    "pom.xml",
    "build.gradle",
    "build.gradle.kts",
)

NPM_DEPENDENCY_SECTIONS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)
COMPOSER_DEPENDENCY_SECTIONS = ("require", "require-dev")


@dataclass(frozen=True)
class VersionChange:
    """A dependency whose declared version differs between branches."""

    manifest: str
    name: str
    source_version: str
    target_version: str

    @property
    def is_major(self) -> bool:
        source_major = leading_number(self.source_version)
        target_major = leading_number(self.target_version)
        if source_major is None or target_major is None:
            return False
        return source_major != target_major

    def describe(self) -> str:
        label = "major version change" if self.is_major else "version change"
        return (
            f"{self.manifest}: {self.name} {self.target_version or '*'} -> "
            f"{self.source_version or '*'} ({label})"
        )


def leading_number(version_string: str) -> Optional[int]:
    """First run of digits in a version spec ("^2.1.0" -> 2, ">=10,<11" -> 10)."""
    match = re.search(r"\d+", version_string or "")
    return int(match.group(0)) if match else None


def _parse_json_sections(content: str, sections) -> Dict[str, str]:
    try:
        data = json.loads(content)
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {}

    dependencies: Dict[str, str] = {}
    for section in sections:
        entries = data.get(section) or {}
        if isinstance(entries, dict):
            for name, spec in entries.items():
                dependencies[name] = spec if isinstance(spec, str) else json.dumps(spec)
    return dependencies


def parse_package_json(content: str) -> Dict[str, str]:
    """Map npm dependency name to its declared version range."""
    return _parse_json_sections(content, NPM_DEPENDENCY_SECTIONS)


def parse_composer_json(content: str) -> Dict[str, str]:
    """Map composer package name to its declared constraint."""
    return _parse_json_sections(content, COMPOSER_DEPENDENCY_SECTIONS)


def _declared_specifier(line: str, requirement: Requirement) -> str:
    """Specifier text in its declared clause order ("django>=3.2,<4" -> ">=3.2,<4")."""
    if requirement.url:
        return ""
    declared = line.split(";", 1)[0][len(requirement.name) :]
    declared = re.sub(r"^\s*\[[^\]]*\]", "", declared)
    return re.sub(r"\s+", "", declared).strip("()")


def parse_requirements_txt(content: str) -> Dict[str, str]:
    """Map requirement name to its specifier string; options and bad lines are skipped."""
    dependencies: Dict[str, str] = {}
    for raw_line in content.splitlines():
        line = raw_line.split(" #", 1)[0].strip()
        if not line or line.startswith(("#", "-")):
            continue
        try:
            requirement = Requirement(line)
        except InvalidRequirement:
            continue
        dependencies[requirement.name.lower()] = _declared_specifier(line, requirement)
    return dependencies


STRUCTURED_PARSERS: Dict[str, Callable[[str], Dict[str, str]]] = {
    "package.json": parse_package_json,
    "composer.json": parse_composer_json,
    "requirements.txt": parse_requirements_txt,
}


def compare_dependency_versions(
    manifest: str, source_content: str, target_content: str
) -> List[VersionChange]:
    """
    Compare per-dependency versions of a structured manifest.

    Only dependencies declared on both branches are compared. Unstructured
    manifests return an empty list.
    """
    parser = STRUCTURED_PARSERS.get(manifest)
    if parser is None:
        return []

    source_deps = parser(source_content)
    target_deps = parser(target_content)

    changes = []
    for name in sorted(set(source_deps) & set(target_deps)):
        if source_deps[name] != target_deps[name]:
            changes.append(
                VersionChange(
                    manifest=manifest,
                    name=name,
                    source_version=source_deps[name],
                    target_version=target_deps[name],
                )
            )
    return changes
