"""Rewrite issue references after issues were renumbered."""

from __future__ import annotations

import re
from functools import cache


@cache
def _reference_pattern(prefix: str) -> re.Pattern[str]:
    # "#12" but not "abc#12" or an HTML entity like "&#12;"
    return re.compile(rf"(?<![\w&]){re.escape(prefix)}(\d+)(?!\d)")


def renumber_references(text: str | None, number_mapping: dict[int, int], prefix: str = "#") -> str | None:
    """Replace prefixed references to old issue numbers with the new numbers.

    All references are rewritten in one pass, so a new number is never
    rewritten again. Numbers missing from the mapping are left as they are.

    Args:
        text: Description or comment content (None passes through)
        number_mapping: Old (Redmine) issue number -> new issue number
        prefix: Reference prefix in front of the number

    Returns:
        The text with references renumbered
    """
    if not text:
        return text

    def _replace(match: re.Match[str]) -> str:
        new_number = number_mapping.get(int(match.group(1)))
        if new_number is None:
            return match.group(0)
        return f"{prefix}{new_number}"

    return _reference_pattern(prefix).sub(_replace, text)
