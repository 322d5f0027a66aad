"""Commit record used by impact analysis and reports."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from .formatting import format_short_date, format_short_sha


@dataclass(frozen=True)
class Commit:
    """
    A commit as listed by `git log`.

    Only the fields needed to show a user what a replace would gain or lose.
    Commits compare and hash by SHA alone.
    """

    sha: str
    message: str = field(compare=False)
    date: str = field(default="", compare=False)
    author: str = field(default="", compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def short_sha(self) -> str:
        return format_short_sha(self.sha)

    @property
    def short_date(self) -> str:
        """YYYY-MM-DD part of the committer date."""
        return format_short_date(self.date)

    def short_message(self, max_length: int = 60) -> str:
        if len(self.message) > max_length:
            return self.message[: max_length - 3] + "..."
        return self.message

    def __str__(self) -> str:
        return f"{self.short_sha}: {self.message}"
