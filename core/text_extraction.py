"""
Text Extraction Helpers
=======================

Small pure helpers for pulling usable pieces out of free-form model text:
fenced blocks, structured spans, bullet lists and labelled numbers.
"""

import re
from typing import List, Optional, Tuple

_FENCE_RE = re.compile(r"```[ \t]*([A-Za-z0-9_+.-]*)[ \t]*\r?\n(.*?)\r?\n?```", re.DOTALL)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+?)\s*$")

_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "\\": "\\"}
_ESCAPE_RE = re.compile(r'\\([nt"\\])')

_OPENERS = {"{": "}", "[": "]"}
_LEADING_BLANK_RE = re.compile(r"\A(?:[ \t]*\r?\n)+")


def has_structure(text: str) -> bool:
    """True if text contains any balanced-looking {...} or [...] span."""
    return find_structured_span(text) is not None


def find_structured_span(text: str) -> Optional[Tuple[int, int]]:
    """
    Locate the span from the first '{' or '[' to the last matching closer.

    Returns (start, end) with end exclusive, or None when no opener has a
    closer after it.
    """
    if not text:
        return None
    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if not starts:
        return None
    start = min(starts)
    end = text.rfind(_OPENERS[text[start]])
    if end <= start:
        # fall back to the other bracket kind
        other = "[" if text[start] == "{" else "{"
        start = text.find(other)
        if start < 0:
            return None
        end = text.rfind(_OPENERS[other])
        if end <= start:
            return None
    return start, end + 1


def extract_fenced_block(text: str, language: Optional[str] = None) -> Optional[str]:
    """
    Return the interior of the first fenced code block.

    When language is given, a block tagged with it is preferred.
    """
    if not text or "```" not in text:
        return None
    blocks = _FENCE_RE.findall(text)
    if not blocks:
        return None
    if language:
        for tag, body in blocks:
            if tag.lower() == language.lower():
                return body
    return blocks[0][1]


def strip_code_fences(text: str) -> str:
    """Unwrap content that is entirely wrapped in a single fenced block."""
    stripped = (text or "").strip()
    if stripped.startswith("```") and stripped.endswith("```"):
        block = extract_fenced_block(stripped)
        if block is not None:
            return block
    return text


def unescape_common(text: str) -> str:
    r"""Turn literal \n, \t, \" and \\ sequences into the characters they name."""
    return _ESCAPE_RE.sub(lambda m: _ESCAPES[m.group(1)], text or "")


def looks_like_payload(text: str) -> bool:
    """Non-empty and containing at least one letter or digit."""
    return bool(text and text.strip() and re.search(r"\w", text))


def trim_blank_lines(text: str) -> str:
    """Drop blank lines around text; indentation of the first line is kept."""
    return _LEADING_BLANK_RE.sub("", text or "").rstrip()


def truncate(text: str, limit: int = 500) -> str:
    text = text or ""
    return text if len(text) <= limit else text[:limit] + "..."


def extract_bullets(text: str, section: Optional[str] = None, limit: int = 10) -> List[str]:
    """
    Collect bullet or numbered list items.

    Args:
        text: Source text
        section: If given, only items following a line that starts with
            this label (e.g. "insights") until the next label line
        limit: Maximum number of items

    Returns:
        List of item strings (quotes stripped)
    """
    if not text:
        return []
    lines = text.splitlines()
    if section:
        label_re = re.compile(rf"^\s*[\"']?{re.escape(section)}[\"']?\s*[:=]", re.IGNORECASE)
        for index, line in enumerate(lines):
            if label_re.match(line):
                lines = lines[index + 1:]
                break
        else:
            return []
    items = []
    for line in lines:
        match = _BULLET_RE.match(line)
        if match:
            items.append(match.group(1).strip().strip("\"'").rstrip(","))
        elif section and re.match(r"^\s*[\"']?[A-Za-z_][\w ]*[\"']?\s*:", line):
            break
        if len(items) >= limit:
            break
    return [i for i in items if i]


def extract_labeled_number(text: str, *labels: str) -> Optional[float]:
    """
    Find the first number following any of the labels.

    Example:
        >>> extract_labeled_number("Quality Score: 8.5/10", "quality score")
        8.5
    """
    if not text:
        return None
    for label in labels:
        pattern = re.compile(
            rf"[\"']?{re.escape(label)}[\"']?\s*[:=]?\s*(-?\d+(?:\.\d+)?)",
            re.IGNORECASE,
        )
        match = pattern.search(text)
        if match:
            return float(match.group(1))
    return None
