"""Core detection, redaction and restoration engine."""

import logging
import re
from collections import Counter
from typing import Callable, Iterable, Optional

from piishield.exceptions import (
    PatternCompilationError,
    RedactionCapacityError,
    RestorationMismatchError,
    ValidatorError,
)
from piishield.heuristics import detect_addresses, detect_names
from piishield.models import (
    Detection,
    DetectionResult,
    PIIPattern,
    RedactionMode,
    RedactionResult,
    RedactOptions,
    ValidationResult,
)
from piishield.registry import PatternRegistry, default_registry, merge_patterns

logger = logging.getLogger(__name__)

NAME_TYPE = "NAME"
ADDRESS_TYPE = "ADDRESS"

# Supplementary Private Use Area-B; one code point stands in for one placeholder.
# This caps the number of distinct values replaced in one call at 65,534,
# less any of these code points already present in the input.
_SENTINEL_BASE = 0x100000
_SENTINEL_LIMIT = 0x10FFFD


def make_placeholder(pii_type: str, ordinal: int) -> str:
    """Return the placeholder token ``[<TYPE>_<ordinal>]``."""
    return f"[{pii_type}_{ordinal}]"


class _WorkingText:
    """Text under redaction.

    Every placeholder written so far is held as a single sentinel code point,
    so a later replacement can neither cut into nor wrap around an earlier one.
    """

    def __init__(self, text: str) -> None:
        self._text = text
        self._reserved = {ord(c) for c in text if _SENTINEL_BASE <= ord(c) <= _SENTINEL_LIMIT}
        self._next_code = _SENTINEL_BASE
        self._placeholders: dict[str, str] = {}  # sentinel -> placeholder

    def replace(self, value: str, placeholder: str) -> bool:
        """Replace every literal occurrence of a value. Returns False if none is left."""
        if value not in self._text:
            return False
        sentinel = self._allocate_sentinel()
        self._text = self._text.replace(value, sentinel)
        self._placeholders[sentinel] = placeholder
        return True

    def render(self) -> str:
        if not self._placeholders:
            return self._text
        return "".join(self._placeholders.get(c, c) for c in self._text)

    def _allocate_sentinel(self) -> str:
        while self._next_code in self._reserved:
            self._next_code += 1
        if self._next_code > _SENTINEL_LIMIT:
            raise RedactionCapacityError(
                f"More than {len(self._placeholders)} distinct values to replace in one call"
            )
        sentinel = chr(self._next_code)
        self._next_code += 1
        return sentinel


class _Redaction:
    """State of a single redaction call."""

    def __init__(self, text: str) -> None:
        self.working = _WorkingText(text)
        self.redaction_map: dict[str, str] = {}
        self.stats: Counter = Counter()
        self._ordinal = 0

    def offer(self, pii_type: str, candidate: str) -> None:
        """Record a candidate and replace whatever of it is still unclaimed.

        A candidate found only inside or across earlier placeholders keeps its
        map entry and ordinal but changes nothing in the text.
        """
        if not candidate or candidate in self.redaction_map:
            return

        self._ordinal += 1
        placeholder = make_placeholder(pii_type, self._ordinal)
        self.redaction_map[candidate] = placeholder
        self.stats[pii_type] += 1
        if not self.working.replace(candidate, placeholder):
            logger.debug(f"{pii_type} candidate already covered by earlier placeholders")

    def result(self) -> RedactionResult:
        return RedactionResult.build(
            redacted_content=self.working.render(),
            redaction_map=self.redaction_map,
            detection_stats=dict(self.stats),
            mode=RedactionMode.LOCAL,
        )


class Engine:
    """
    Local regex and heuristic redaction engine.

    Patterns run in priority order over the original text. Each accepted
    candidate gets the next placeholder in a per-call sequence shared by
    all types, and every occurrence of it still unclaimed is replaced. The
    name and address heuristics run after the catalog. Earlier placeholders
    always win: a later candidate overlapping one is recorded in the map
    but only its free occurrences are replaced.
    """

    def __init__(
        self,
        registry: Optional[PatternRegistry] = None,
        name_detector: Callable[[str], list[str]] = detect_names,
        address_detector: Callable[[str], list[str]] = detect_addresses,
    ) -> None:
        """
        Initialize engine with pattern registry.

        Args:
            registry: PatternRegistry with loaded patterns (defaults to the built-in catalog)
            name_detector: Heuristic returning person-name candidates
            address_detector: Heuristic returning postal-address candidates
        """
        self.registry = registry if registry is not None else default_registry()
        self.name_detector = name_detector
        self.address_detector = address_detector

    def redact(self, text: str, options: Optional[RedactOptions] = None) -> RedactionResult:
        """
        Redact PII from text.

        Args:
            text: Text to redact
            options: Heuristic switches and per-call custom patterns

        Returns:
            RedactionResult with redacted text, the original->placeholder map
            and per-type counts of distinct values

        Raises:
            RedactionCapacityError: If more than 65,534 distinct values must be
                replaced in one call
        """
        if options is None:
            options = RedactOptions()

        redaction = _Redaction(text)
        patterns = merge_patterns(self.registry.get_patterns(), options.custom_patterns)

        for pattern in patterns:
            for candidate in self._candidates(pattern, text):
                if candidate in redaction.redaction_map:
                    continue
                if not self._accepts(pattern, candidate):
                    continue
                redaction.offer(pattern.type, candidate)

        if options.include_names:
            for name in self.name_detector(text):
                redaction.offer(NAME_TYPE, name)

        if options.include_addresses:
            for address in self.address_detector(text):
                redaction.offer(ADDRESS_TYPE, address)

        result = redaction.result()
        logger.debug(
            f"Redacted {len(result.redaction_map)} distinct values "
            f"across {len(result.detection_stats)} types"
        )
        return result

    def detect(self, text: str, options: Optional[RedactOptions] = None) -> DetectionResult:
        """
        Find positioned PII occurrences without redacting.

        Patterns and heuristics run in the same order as :meth:`redact`. A
        match overlapping an earlier accepted span is skipped. Each distinct
        value gets one placeholder, numbered in the order it was accepted.

        Args:
            text: Text to scan
            options: Heuristic switches and per-call custom patterns

        Returns:
            DetectionResult with detections sorted by position and a preview
            of the redacted text
        """
        if options is None:
            options = RedactOptions()

        spans: list[tuple[int, int, str]] = []

        def take(start: int, end: int, pii_type: str) -> bool:
            if start == end:
                return False
            if any(start < s_end and end > s_start for s_start, s_end, _ in spans):
                return False
            spans.append((start, end, pii_type))
            return True

        for pattern in merge_patterns(self.registry.get_patterns(), options.custom_patterns):
            try:
                compiled = pattern.compile()
            except PatternCompilationError as e:
                logger.warning(f"Skipping pattern {pattern.type}: {e}")
                continue

            verdicts: dict[str, bool] = {}
            for match in compiled.finditer(text):
                value = match.group(0)
                if value not in verdicts:
                    verdicts[value] = self._accepts(pattern, value)
                if verdicts[value]:
                    take(match.start(), match.end(), pattern.type)

        heuristics = []
        if options.include_names:
            heuristics.append((NAME_TYPE, self.name_detector))
        if options.include_addresses:
            heuristics.append((ADDRESS_TYPE, self.address_detector))
        for pii_type, detector in heuristics:
            for candidate in dict.fromkeys(detector(text)):
                if not candidate:
                    continue
                for match in re.finditer(re.escape(candidate), text):
                    take(match.start(), match.end(), pii_type)

        placeholders: dict[str, str] = {}
        stats: Counter = Counter()
        detections = []
        for start, end, pii_type in spans:
            original = text[start:end]
            if original not in placeholders:
                placeholders[original] = make_placeholder(pii_type, len(placeholders) + 1)
                stats[pii_type] += 1
            detections.append(Detection(pii_type, original, placeholders[original], start, end))
        detections.sort(key=lambda d: d.start)

        preview = text
        for d in reversed(detections):
            preview = preview[: d.start] + d.placeholder + preview[d.end :]

        logger.debug(f"Detected {len(detections)} occurrences of {len(placeholders)} distinct values")
        return DetectionResult(
            redacted_text=preview,
            detections=detections,
            detection_stats=dict(stats),
        )

    def restore(self, redacted_text: str, redaction_map: dict[str, str]) -> str:
        """Restore original values; see :func:`restore`."""
        return restore(redacted_text, redaction_map)

    def validate(self, value: str, pattern_type: str) -> ValidationResult:
        """
        Check whether a whole value is a valid instance of a pattern type.

        Raises:
            ValueError: If pattern not found
        """
        pattern = self.registry.get_pattern(pattern_type)
        if pattern is None:
            raise ValueError(f"Pattern not found: {pattern_type}")

        matched = pattern.compile().fullmatch(value) is not None
        if not matched:
            return ValidationResult(pattern_type=pattern_type, is_valid=False, matched=False)

        passed = self._accepts(pattern, value)
        return ValidationResult(
            pattern_type=pattern_type,
            is_valid=passed,
            matched=True,
            validator_passed=passed if pattern.validator is not None else None,
        )

    def _candidates(self, pattern: PIIPattern, text: str) -> Iterable[str]:
        """Unique non-empty matches of a pattern, in order of first occurrence."""
        try:
            compiled = pattern.compile()
        except PatternCompilationError as e:
            logger.warning(f"Skipping pattern {pattern.type}: {e}")
            return []

        seen: dict[str, None] = {}
        for match in compiled.finditer(text):
            value = match.group(0)
            if value:
                seen.setdefault(value, None)
        return list(seen)

    def _accepts(self, pattern: PIIPattern, candidate: str) -> bool:
        try:
            return pattern.accepts(candidate)
        except ValidatorError as e:
            logger.warning(f"Rejecting candidate: {e}")
            return False


def restore(redacted_text: str, redaction_map: dict[str, str]) -> str:
    """
    Reconstruct the original text from redacted text and its map.

    Placeholders are substituted in a single pass, so the result does not
    depend on map order and restored values are never rescanned.
    """
    inverse = {placeholder: original for original, placeholder in redaction_map.items()}
    if not inverse:
        return redacted_text

    alternation = "|".join(re.escape(p) for p in sorted(inverse, key=len, reverse=True))
    return re.sub(alternation, lambda m: inverse[m.group(0)], redacted_text)


def check_round_trip(original: str, result: RedactionResult) -> None:
    """
    Verify that restoring a result reproduces the original text.

    Raises:
        RestorationMismatchError: If restoration differs from the original
    """
    restored = restore(result.redacted_content, result.redaction_map)
    if restored != original:
        raise RestorationMismatchError(
            f"Restored text differs from original "
            f"(lengths {len(restored)} vs {len(original)}, {len(result.redaction_map)} placeholders)"
        )


def summarize_stats(detection_stats: dict[str, int]) -> dict[str, object]:
    """Summarize detection counts for monitoring."""
    total = sum(detection_stats.values())
    most_common = "None"
    best = 0
    for pii_type, count in detection_stats.items():
        if count > best:
            most_common, best = pii_type, count
    return {
        "total_pii_detected": total,
        "most_common_type": most_common,
        "type_breakdown": dict(detection_stats),
    }
