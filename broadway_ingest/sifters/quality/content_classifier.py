"""Content quality classification using an ordered rule list.

Every fetched document lands in exactly one tier:

| Order | Rule              | Trigger                                              | Tier      |
|-------|-------------------|------------------------------------------------------|-----------|
| 1     | near_empty        | < 50 chars after cleaning                            | invalid   |
| 2     | non_content       | wall/error/legal/newsletter marker, bare URLs, menus | invalid   |
| 3     | subject_mismatch  | >= 3 other known shows named, expected one absent    | invalid   |
| 4     | excerpt_only      | body < 300 chars AND aggregator excerpts exist       | excerpt   |
| 5     | stub              | body < 300 chars, no excerpts                        | stub      |
| 6     | truncation        | severe signal, or >= 2 moderate signals while short  | truncated |
| 7     | complete          | always                                               | complete  |

First match wins. Rules 3-7 look at the body after leading/trailing junk
has been stripped, so a newsletter footer is never mistaken for the
article's real ending.

The classifier is a pure function of its inputs: no I/O, no shared mutable
state, and it never raises. Malformed input degrades to ``invalid`` with a
reason.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Pattern, Tuple

from loguru import logger

from broadway_ingest.config.content_patterns import (
    FOOTER,
    FOOTER_PATTERNS,
    MODERATE,
    MODERATE_TRUNCATION_PATTERNS,
    NAVIGATION_PATTERNS,
    PATTERN_GROUPS,
    SEVERE,
    SEVERE_TRUNCATION_PATTERNS,
    URL_ONLY_PATTERN,
)
from broadway_ingest.config.known_subjects import SubjectDirectory
from broadway_ingest.data_management.schemas import (
    AssessmentContext,
    ContentAssessment,
    ContentTier,
)
from broadway_ingest.sifters.quality.text_cleaning import (
    DEFAULT_MAX_STRIP_FRACTION,
    StripResult,
    clean_text,
    count_words,
    ends_with_terminal_punctuation,
    strip_structural_junk,
)


@dataclass(frozen=True)
class PreparedText:
    """Input after cleaning and junk stripping, shared by every rule."""

    cleaned: str
    body: str
    strip: StripResult
    context: AssessmentContext

    @property
    def char_count(self) -> int:
        return len(self.body)

    @property
    def word_count(self) -> int:
        return count_words(self.body)


@dataclass(frozen=True)
class RuleMatch:
    """Why a rule fired."""

    reason: str
    signals: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TierRule:
    """One entry of the ordered classification list.

    Attributes:
        name: Stable rule identifier.
        tier: Tier assigned when the rule matches.
        check: Returns a RuleMatch when the rule applies, else None.
    """

    name: str
    tier: ContentTier
    check: Callable[[PreparedText], Optional[RuleMatch]] = field(compare=False)


class ContentQualityClassifier:
    """
    Assigns a ContentTier to fetched text.

    Thresholds are class constants and can be overridden per instance.

    Usage:
        classifier = ContentQualityClassifier()
        assessment = classifier.assess(text, AssessmentContext(subject_id="hamilton-2015"))

    Example:
        >>> classifier = ContentQualityClassifier()
        >>> classifier.assess("", AssessmentContext()).tier
        <ContentTier.INVALID: 'invalid'>
    """

    MIN_CONTENT_CHARS = 50
    BODY_MIN_CHARS = 300
    COMPLETE_MIN_CHARS = 1500
    COMPLETE_MIN_WORDS = 300
    MIN_EXCERPT_CHARS = 20
    MISMATCH_MIN_OTHER_SUBJECTS = 3
    NAV_SHORT_LINE_CHARS = 40
    NAV_SHORT_LINE_RATIO = 0.7
    NAV_MIN_MATCHES = 2
    NAV_OVERWHELMING_MATCHES = 5
    TAIL_CHARS = 400

    def __init__(
        self,
        subject_directory: Optional[SubjectDirectory] = None,
        max_strip_fraction: float = DEFAULT_MAX_STRIP_FRACTION,
        min_content_chars: int = MIN_CONTENT_CHARS,
        body_min_chars: int = BODY_MIN_CHARS,
        complete_min_chars: int = COMPLETE_MIN_CHARS,
        complete_min_words: int = COMPLETE_MIN_WORDS,
    ) -> None:
        """
        Initialize the classifier.

        Args:
            subject_directory: Known-show lookup for mismatch detection
            max_strip_fraction: Largest share of text one junk pattern may remove
            min_content_chars: Below this (after cleaning) input is near-empty
            body_min_chars: Below this the body is an excerpt/stub
            complete_min_chars: Length floor under which moderate signals count
            complete_min_words: Word floor under which moderate signals count
        """
        self.subject_directory = subject_directory or SubjectDirectory()
        self.max_strip_fraction = max_strip_fraction
        self.min_content_chars = min_content_chars
        self.body_min_chars = body_min_chars
        self.complete_min_chars = complete_min_chars
        self.complete_min_words = complete_min_words

        self.marker_groups: List[Tuple[str, List[Pattern]]] = [
            (group, [re.compile(p, re.IGNORECASE) for p in patterns])
            for group, patterns in PATTERN_GROUPS.items()
        ]
        self.nav_patterns = [re.compile(p, re.IGNORECASE | re.MULTILINE) for p in NAVIGATION_PATTERNS]
        self.url_only = re.compile(URL_ONLY_PATTERN)
        self.severe_patterns = [(n, re.compile(p, re.IGNORECASE)) for n, p in SEVERE_TRUNCATION_PATTERNS]
        self.moderate_patterns = [(n, re.compile(p, re.IGNORECASE)) for n, p in MODERATE_TRUNCATION_PATTERNS]
        self.footer_patterns = [(n, re.compile(p, re.IGNORECASE | re.DOTALL)) for n, p in FOOTER_PATTERNS]

        self.rules: Tuple[TierRule, ...] = (
            TierRule("near_empty", ContentTier.INVALID, self._check_near_empty),
            TierRule("non_content", ContentTier.INVALID, self._check_non_content),
            TierRule("subject_mismatch", ContentTier.INVALID, self._check_subject_mismatch),
            TierRule("excerpt_only", ContentTier.EXCERPT, self._check_excerpt_only),
            TierRule("stub", ContentTier.STUB, self._check_stub),
            TierRule("truncation", ContentTier.TRUNCATED, self._check_truncation),
            TierRule("complete", ContentTier.COMPLETE, self._check_complete),
        )
        self._logger = logger.bind(component="ContentQualityClassifier")

    # ── Public API ────────────────────────────────────────────────────────

    def assess(self, raw_text: Any, context: Optional[AssessmentContext] = None) -> ContentAssessment:
        """
        Classify fetched text into a content tier.

        Args:
            raw_text: Fetched text (str; bytes are decoded; anything else is invalid)
            context: Expected subject, source URL and aggregator excerpts

        Returns:
            ContentAssessment. Never raises.
        """
        context = context or AssessmentContext()

        text = self._coerce(raw_text)
        if text is None:
            return self._assessment(
                ContentTier.INVALID,
                None,
                RuleMatch(f"Unsupported input type: {type(raw_text).__name__}", ("invalid:input_type",)),
                context,
            )

        try:
            prepared = self.prepare(text, context)
            for rule in self.rules:
                match = rule.check(prepared)
                if match is not None:
                    return self._assessment(rule.tier, prepared, match, context)
        except Exception as e:
            # Classification must degrade, not fail, on hostile input
            self._logger.exception(f"Classifier error for {context.source_url}: {e}")
            return self._assessment(
                ContentTier.INVALID,
                None,
                RuleMatch(f"Classifier error: {e}", ("invalid:classifier_error",)),
                context,
            )

        # The complete rule always matches; reaching here means a custom rule list
        return self._assessment(
            ContentTier.INVALID, None, RuleMatch("No rule matched", ("invalid:no_rule",)), context
        )

    def prepare(self, text: str, context: AssessmentContext) -> PreparedText:
        """Clean ``text`` and strip structural junk."""
        cleaned = clean_text(text)
        strip = strip_structural_junk(cleaned, self.max_strip_fraction)
        return PreparedText(cleaned=cleaned, body=strip.text, strip=strip, context=context)

    # ── Rules ─────────────────────────────────────────────────────────────

    def _check_near_empty(self, prepared: PreparedText) -> Optional[RuleMatch]:
        length = len(prepared.cleaned)
        if length < self.min_content_chars:
            return RuleMatch(
                f"Empty or near-empty content ({length} chars)",
                ("invalid:near_empty",),
            )
        return None

    def _check_non_content(self, prepared: PreparedText) -> Optional[RuleMatch]:
        # Markers are searched before stripping: a trailing junk block can hold
        # the wall itself. Anchored legal markers also get the stripped body.
        for group, patterns in self.marker_groups:
            for pattern in patterns:
                match = pattern.search(prepared.cleaned) or pattern.search(prepared.body)
                if match:
                    return RuleMatch(
                        f"Non-content page ({group.replace('_', ' ')}): '{match.group(0).strip()}'",
                        (f"invalid:{group}",),
                    )

        if self.url_only.match(prepared.cleaned):
            return RuleMatch("Payload is only URLs", ("invalid:url_only",))

        return self._check_navigation(prepared.cleaned)

    def _check_navigation(self, text: str) -> Optional[RuleMatch]:
        lines = [line for line in text.split("\n") if line.strip()]
        nav_matches = sum(1 for p in self.nav_patterns if p.search(text))
        if not lines or nav_matches == 0:
            return None

        short_lines = sum(1 for line in lines if len(line.strip()) < self.NAV_SHORT_LINE_CHARS)
        short_ratio = short_lines / len(lines)

        if (short_ratio > self.NAV_SHORT_LINE_RATIO and nav_matches >= self.NAV_MIN_MATCHES) or (
            nav_matches >= self.NAV_OVERWHELMING_MATCHES
        ):
            return RuleMatch(
                f"Navigation-dominated text ({short_ratio:.0%} short lines, "
                f"{nav_matches} menu keywords)",
                ("invalid:navigation",),
            )
        return None

    def _check_subject_mismatch(self, prepared: PreparedText) -> Optional[RuleMatch]:
        ctx = prepared.context
        if not ctx.subject_id and not ctx.subject_title:
            return None

        directory = self.subject_directory
        others = [
            sid
            for sid in directory.mentioned_subjects(prepared.body)
            if not directory.is_expected(sid, ctx.subject_id)
        ]
        if len(others) < self.MISMATCH_MIN_OTHER_SUBJECTS:
            return None
        if directory.mentions(prepared.body, ctx.subject_id, ctx.subject_title):
            return None

        shown = ", ".join(others[:5]) + ("..." if len(others) > 5 else "")
        return RuleMatch(
            f"Names {len(others)} other shows ({shown}) but not the expected one",
            ("invalid:subject_mismatch",),
        )

    def _usable_excerpts(self, context: AssessmentContext) -> List[str]:
        return [e for e in context.excerpts if len(e.strip()) >= self.MIN_EXCERPT_CHARS]

    def _check_excerpt_only(self, prepared: PreparedText) -> Optional[RuleMatch]:
        if prepared.char_count >= self.body_min_chars:
            return None
        excerpts = self._usable_excerpts(prepared.context)
        if not excerpts:
            return None
        return RuleMatch(
            f"Body too short ({prepared.char_count} chars); {len(excerpts)} aggregator excerpt(s) available",
            ("excerpt:short_body",),
        )

    def _check_stub(self, prepared: PreparedText) -> Optional[RuleMatch]:
        if prepared.char_count >= self.body_min_chars:
            return None
        return RuleMatch(
            f"Body too short ({prepared.char_count} chars) and no excerpts",
            ("stub:short_body",),
        )

    def truncation_signals(self, body: str) -> List[str]:
        """Severe, moderate and footer signals found in ``body``."""
        tail = body[-self.TAIL_CHARS:]
        signals = [f"{SEVERE}:{name}" for name, p in self.severe_patterns if p.search(body)]

        moderate = [f"{MODERATE}:{name}" for name, p in self.moderate_patterns if p.search(tail)]
        if not ends_with_terminal_punctuation(body):
            moderate.append(f"{MODERATE}:missing_terminal_punctuation")

        footer = [f"{FOOTER}:{name}" for name, p in self.footer_patterns if p.search(tail)]
        if len(footer) >= 2:
            moderate.append(f"{MODERATE}:footer_contamination")

        return signals + moderate + footer

    def _is_short(self, prepared: PreparedText) -> bool:
        return (
            prepared.char_count < self.complete_min_chars
            or prepared.word_count < self.complete_min_words
        )

    def _check_truncation(self, prepared: PreparedText) -> Optional[RuleMatch]:
        signals = self.truncation_signals(prepared.body)
        severe = [s for s in signals if s.startswith(SEVERE + ":")]
        moderate = [s for s in signals if s.startswith(MODERATE + ":")]

        if severe:
            return RuleMatch(f"Truncation signal: {severe[0]}", tuple(signals))
        if len(moderate) >= 2 and self._is_short(prepared):
            return RuleMatch(
                f"{len(moderate)} moderate truncation signals in a short body "
                f"({prepared.char_count} chars, {prepared.word_count} words)",
                tuple(signals),
            )
        return None

    def _check_complete(self, prepared: PreparedText) -> Optional[RuleMatch]:
        return RuleMatch(
            f"Full text ({prepared.char_count} chars, {prepared.word_count} words)",
            tuple(self.truncation_signals(prepared.body)),
        )

    # ── Helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _coerce(raw_text: Any) -> Optional[str]:
        if raw_text is None:
            return ""
        if isinstance(raw_text, str):
            return raw_text
        if isinstance(raw_text, (bytes, bytearray)):
            return bytes(raw_text).decode("utf-8", errors="replace")
        return None

    def _assessment(
        self,
        tier: ContentTier,
        prepared: Optional[PreparedText],
        match: RuleMatch,
        context: AssessmentContext,
    ) -> ContentAssessment:
        signals = list(match.signals)
        if prepared is not None:
            signals.extend(prepared.strip.signals)
        return ContentAssessment(
            tier=tier,
            word_count=prepared.word_count if prepared else 0,
            char_count=prepared.char_count if prepared else 0,
            signals=signals,
            reason=match.reason,
            subject_id=context.subject_id,
            source_url=context.source_url,
        )
