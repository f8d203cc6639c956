"""Text cleaning for fetched review content.

Two layers:
- clean_text: lossless-ish normalization (entities, control characters,
  markdown image/link markup, whitespace). Safe on any text.
- strip_structural_junk: removes leading/trailing page furniture (mastheads,
  newsletter promos, share bars, copyright footers) iteratively until the
  text stops changing. A single pattern that would remove more than
  ``max_strip_fraction`` of the original text is skipped so a short but
  legitimate document is never destroyed by one greedy pattern.
"""

import html
import re
from dataclasses import dataclass, field
from typing import List, Pattern, Tuple

from broadway_ingest.config.content_patterns import (
    LEADING_JUNK_PATTERNS,
    TRAILING_JUNK_PATTERNS,
)

DEFAULT_MAX_STRIP_FRACTION = 0.5

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_MD_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_MD_LINK = re.compile(r"\[([^\]]*)\]\((?:[^()\s]|\([^)]*\))+\)")
_SPACE_RUNS = re.compile(r"[ \t\u00a0]+")
_BLANK_LINES = re.compile(r"\n\s*\n\s*\n+")
_ZERO_WIDTH = re.compile(r"[\u200b\u200c\u200d\ufeff]")


def _compile(patterns: List[Tuple[str, str]]) -> List[Tuple[str, Pattern]]:
    return [(name, re.compile(p, re.IGNORECASE | re.DOTALL)) for name, p in patterns]


_LEADING = _compile(LEADING_JUNK_PATTERNS)
_TRAILING = _compile(TRAILING_JUNK_PATTERNS)


def clean_text(text: str) -> str:
    """Normalize raw fetched text without removing any prose."""
    if not text:
        return ""
    cleaned = html.unescape(text)
    # Double-encoded entities (&amp;#8217;) survive one pass
    if "&" in cleaned:
        cleaned = html.unescape(cleaned)
    cleaned = _ZERO_WIDTH.sub("", cleaned)
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = _MD_IMAGE.sub("", cleaned)
    cleaned = _MD_LINK.sub(r"\1", cleaned)
    cleaned = _SPACE_RUNS.sub(" ", cleaned)
    cleaned = "\n".join(line.strip() for line in cleaned.split("\n"))
    cleaned = _BLANK_LINES.sub("\n\n", cleaned)
    return cleaned.strip()


@dataclass
class StripResult:
    """Outcome of structural junk stripping.

    Attributes:
        text: Text with junk removed.
        applied: Names of patterns that removed something, in order.
        skipped: Names of patterns that matched but would have removed too much.
    """

    text: str
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def signals(self) -> List[str]:
        return [f"stripped:{name}" for name in self.applied]


def strip_structural_junk(
    text: str,
    max_strip_fraction: float = DEFAULT_MAX_STRIP_FRACTION,
) -> StripResult:
    """
    Strip leading and trailing page furniture from ``text``.

    Args:
        text: Cleaned text (see clean_text).
        max_strip_fraction: Largest share of the original text a single
            pattern may remove.

    Returns:
        StripResult with the stripped text and the patterns applied/skipped.
    """
    result = StripResult(text=text or "")
    original_length = len(result.text)
    if not original_length:
        return result

    limit = original_length * max_strip_fraction
    changed = True
    while changed:
        changed = False
        for name, pattern in _LEADING + _TRAILING:
            if name in result.skipped:
                continue
            stripped = pattern.sub("", result.text, count=1).strip()
            if stripped == result.text:
                continue
            if len(result.text) - len(stripped) > limit:
                result.skipped.append(name)
                continue
            result.text = stripped
            result.applied.append(name)
            changed = True

    return result


def ends_with_terminal_punctuation(text: str) -> bool:
    """Whether text ends like a finished sentence (allowing closing quotes/brackets)."""
    tail = text.rstrip()[-20:]
    if not tail:
        return False
    return bool(re.search(r"[.!?][\"'”’)\]]*\s*$", tail)) or bool(re.search(r"[\"”]\s*$", tail))


def count_words(text: str) -> int:
    return len(text.split())
