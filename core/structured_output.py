"""
Structured Output Parser
========================

Turns unreliable free-text model responses into typed records.

Tiers, in strict order, stopping at the first success:

1. Structure presence check - no {...} / [...] span at all means the
   text is raw content; go straight to tier 3.
2. Direct parse attempts - verbatim, trimmed, fenced-block interior,
   first-opener-to-last-closer span, then a syntax repair pass
   (json_repair: control characters, trailing commas, single quotes).
3. Auto-wrap - unescape common sequences and hand the cleaned text to a
   shape-specific wrapper that marks the value as recovered.
4. Fallback - return the caller's fallback unchanged.

parse() never raises.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from json_repair import repair_json

from core.text_extraction import (
    extract_fenced_block,
    find_structured_span,
    has_structure,
    looks_like_payload,
    trim_blank_lines,
    unescape_common,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ParseTier(str, Enum):
    """Which tier produced the value."""
    DIRECT = "direct"
    AUTO_WRAPPED = "auto_wrapped"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """
    Explicit tiered result.

    Attributes:
        value: Parsed, wrapped or fallback value
        tier: Tier that produced it
        strategy: Name of the successful strategy ("verbatim", "trimmed",
            "fenced", "span", "repaired", "auto_wrap", "fallback")
        structure_found: Whether tier 1 found any structured span
    """
    value: T
    tier: ParseTier
    strategy: str
    structure_found: bool = False

    @property
    def recovered(self) -> bool:
        """True if the value did not come from a clean structured response."""
        return self.tier != ParseTier.DIRECT


def _identity(data: Any) -> Any:
    return data


class StructuredOutputParser:
    """
    Tiered parser for model output.

    Example:
        >>> parser = StructuredOutputParser()
        >>> parser.parse('```json\\n{"a": 1}\\n```', fallback={}, context_label="Demo")
        {'a': 1}
        >>> parser.parse("", fallback={"ok": False}, context_label="Demo")
        {'ok': False}
    """

    def parse(
        self,
        raw_text: Optional[str],
        fallback: T,
        context_label: str,
        coerce: Optional[Callable[[Any], T]] = None,
        auto_wrap: Optional[Callable[[str], T]] = None,
    ) -> T:
        """
        Parse raw model text into the expected shape.

        Args:
            raw_text: Model response
            fallback: Value returned when nothing usable remains
            context_label: Label used in log lines
            coerce: Converts decoded JSON into the expected shape; raising
                means "not this shape" and the next strategy is tried
            auto_wrap: Wraps cleaned raw text into the expected shape

        Returns:
            Value of the expected shape (never raises)
        """
        return self.parse_with_report(raw_text, fallback, context_label, coerce, auto_wrap).value

    def parse_with_report(
        self,
        raw_text: Optional[str],
        fallback: T,
        context_label: str,
        coerce: Optional[Callable[[Any], T]] = None,
        auto_wrap: Optional[Callable[[str], T]] = None,
    ) -> ParseResult[T]:
        """Same as parse() but returns the tier and strategy used."""
        coerce = coerce or _identity
        text = raw_text if isinstance(raw_text, str) else ("" if raw_text is None else str(raw_text))

        # Tier 1
        structure_found = has_structure(text)

        # Tier 2
        if structure_found:
            for strategy, candidate in self._candidates(text):
                value = self._try_decode(candidate, coerce, repair=(strategy == "repaired"))
                if value is not None:
                    logger.debug(f"[Parser:{context_label}] Parsed via '{strategy}'")
                    return ParseResult(value, ParseTier.DIRECT, strategy, structure_found)
            logger.warning(
                f"⚠️ [Parser:{context_label}] All parse attempts failed ({len(text)} chars)"
            )
        else:
            logger.info(f"📝 [Parser:{context_label}] No structure detected, treating as raw content")

        # Tier 3
        if auto_wrap is not None:
            payload = text
            if structure_found:
                payload = extract_fenced_block(text) or text
            cleaned = trim_blank_lines(unescape_common(payload))
            if looks_like_payload(cleaned):
                try:
                    wrapped = auto_wrap(cleaned)
                except Exception as e:
                    logger.warning(f"⚠️ [Parser:{context_label}] Auto-wrap failed: {e}")
                else:
                    logger.info(
                        f"🩹 [Parser:{context_label}] Auto-wrapped {len(cleaned)} chars of raw content"
                    )
                    return ParseResult(wrapped, ParseTier.AUTO_WRAPPED, "auto_wrap", structure_found)

        # Tier 4
        logger.warning(f"⚠️ [Parser:{context_label}] Using fallback value")
        return ParseResult(fallback, ParseTier.FALLBACK, "fallback", structure_found)

    def _candidates(self, text: str) -> List[Tuple[str, str]]:
        candidates = [("verbatim", text), ("trimmed", text.strip())]

        fenced = extract_fenced_block(text, language="json")
        if fenced is not None:
            candidates.append(("fenced", fenced.strip()))

        span = find_structured_span(text)
        span_text = text[span[0]:span[1]] if span else text.strip()
        candidates.append(("span", span_text))
        candidates.append(("repaired", span_text))
        return candidates

    def _try_decode(self, candidate: str, coerce: Callable[[Any], T], repair: bool = False) -> Optional[T]:
        if not candidate:
            return None
        try:
            if repair:
                data = repair_json(candidate, return_objects=True)
                # an empty container means nothing was salvaged
                if not data:
                    return None
            else:
                data = json.loads(candidate)
            if not isinstance(data, (dict, list)):
                return None
            return coerce(data)
        except Exception as e:
            logger.debug(f"[Parser] Candidate rejected: {type(e).__name__}: {e}")
            return None


# Module-level default instance
default_parser = StructuredOutputParser()


def parse(
    raw_text: Optional[str],
    fallback: T,
    context_label: str,
    coerce: Optional[Callable[[Any], T]] = None,
    auto_wrap: Optional[Callable[[str], T]] = None,
) -> T:
    """Shortcut for default_parser.parse()."""
    return default_parser.parse(raw_text, fallback, context_label, coerce, auto_wrap)
