"""Small display helpers shared by reports and the CLI."""

import re
from typing import Sequence


def format_short_date(date_string: str) -> str:
    """Extract YYYY-MM-DD from a git ISO date like "2025-08-18 14:04:26 -0700"."""
    if not date_string:
        return ""

    date_match = re.match(r"(\d{4}-\d{2}-\d{2})", date_string)
    if date_match:
        return date_match.group(1)
    return date_string[:10]


def format_short_sha(sha: str) -> str:
    """8-character abbreviated SHA (or the input when already shorter)."""
    if not sha:
        return ""
    return sha[:8]


def pluralize(count: int, noun: str, plural: str = "") -> str:
    """Return "1 commit" / "3 commits"."""
    word = noun if count == 1 else (plural or f"{noun}s")
    return f"{count} {word}"


def format_path_list(paths: Sequence[str], limit: int = 5) -> str:
    """Comma-joined paths, truncated with a "+N more" suffix."""
    shown = list(paths[:limit])
    text = ", ".join(shown)
    if len(paths) > limit:
        text += f" (+{len(paths) - limit} more)"
    return text
