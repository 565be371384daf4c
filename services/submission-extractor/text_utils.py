"""Length limits and whitespace cleanup for prompt text."""

import re

TRUNCATION_MARKER = "\n...[truncated]"

_BLANK_RUNS = re.compile(r"\n{3,}")


def truncate(text: str, limit: int) -> str:
    """Cut text to `limit` characters, appending TRUNCATION_MARKER if anything was dropped."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def collapse_blank_lines(text: str) -> str:
    """Collapse runs of three or more newlines into one blank line."""
    return _BLANK_RUNS.sub("\n\n", text).strip()
