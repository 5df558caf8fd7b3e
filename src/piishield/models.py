"""Data models for pii-shield."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from piishield.exceptions import PatternCompilationError, ValidatorError


class Severity(str, Enum):
    """Severity level of PII type."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RedactionStatus(str, Enum):
    """Outcome of a redaction call."""

    REDACTED = "redacted"
    CLEAN = "clean"
    FAILED = "failed"


class RedactionMode(str, Enum):
    """Which redaction path produced a result."""

    LOCAL = "local"
    REMOTE = "remote"


_FLAG_VALUES = {
    "IGNORECASE": re.IGNORECASE,
    "MULTILINE": re.MULTILINE,
    "DOTALL": re.DOTALL,
    "UNICODE": re.UNICODE,
    "VERBOSE": re.VERBOSE,
}


@dataclass
class Examples:
    """Pattern examples checked when a catalog is loaded.

    ``match`` and ``nomatch`` are checked against the matcher alone,
    ``rejected`` must match the matcher but fail the validator.
    """

    match: list[str] = field(default_factory=list)
    nomatch: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)


@dataclass
class PIIPattern:
    """A named detection rule."""

    type: str
    pattern: str
    priority: int
    validator: Optional[Callable[[str], bool]] = None
    validator_name: Optional[str] = None
    flags: list[str] = field(default_factory=list)
    severity: Severity = Severity.MEDIUM
    description: str = ""
    examples: Optional[Examples] = None
    compiled: Optional[re.Pattern] = field(default=None, repr=False, compare=False)

    def compile(self) -> re.Pattern:
        """Compile the matcher, caching the result on the pattern.

        Raises:
            PatternCompilationError: If the regex or its flags are invalid
        """
        if self.compiled is not None:
            return self.compiled

        flags = 0
        for flag_name in self.flags:
            if flag_name not in _FLAG_VALUES:
                raise PatternCompilationError(
                    f"Unknown regex flag {flag_name!r} for pattern {self.type}"
                )
            flags |= _FLAG_VALUES[flag_name]

        try:
            self.compiled = re.compile(self.pattern, flags)
        except re.error as e:
            raise PatternCompilationError(f"Failed to compile pattern {self.type}: {e}") from e
        return self.compiled

    def accepts(self, candidate: str) -> bool:
        """Run the validator against a candidate. No validator means accept.

        Raises:
            ValidatorError: If the validator itself raises
        """
        if self.validator is None:
            return True
        try:
            return bool(self.validator(candidate))
        except Exception as e:
            raise ValidatorError(
                f"Validator for {self.type} raised {type(e).__name__}"
            ) from e


@dataclass
class RedactOptions:
    """Per-call redaction options."""

    include_names: bool = True
    include_addresses: bool = True
    custom_patterns: list[PIIPattern] = field(default_factory=list)


@dataclass
class RedactionResult:
    """Result from a redaction call."""

    redacted_content: str
    redaction_map: dict[str, str] = field(default_factory=dict)
    pii_detected: bool = False
    detection_stats: dict[str, int] = field(default_factory=dict)
    status: RedactionStatus = RedactionStatus.CLEAN
    mode: RedactionMode = RedactionMode.LOCAL
    error: Optional[str] = None

    @classmethod
    def build(
        cls,
        redacted_content: str,
        redaction_map: dict[str, str],
        detection_stats: dict[str, int],
        mode: RedactionMode = RedactionMode.LOCAL,
    ) -> "RedactionResult":
        """Build a successful result, deriving ``pii_detected`` and ``status``."""
        detected = len(redaction_map) > 0
        return cls(
            redacted_content=redacted_content,
            redaction_map=redaction_map,
            pii_detected=detected,
            detection_stats=detection_stats,
            status=RedactionStatus.REDACTED if detected else RedactionStatus.CLEAN,
            mode=mode,
        )

    @classmethod
    def failed(cls, original: str, mode: RedactionMode, error: str) -> "RedactionResult":
        """Build the fail-closed result: original content, explicitly marked FAILED."""
        return cls(
            redacted_content=original,
            status=RedactionStatus.FAILED,
            mode=mode,
            error=error,
        )

    @property
    def safe_to_forward(self) -> bool:
        """Return False when redaction could not be confirmed."""
        return self.status != RedactionStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        """Return a plain serializable record."""
        return {
            "redacted_content": self.redacted_content,
            "redaction_map": dict(self.redaction_map),
            "pii_detected": self.pii_detected,
            "detection_stats": dict(self.detection_stats),
            "status": self.status.value,
            "mode": self.mode.value,
            "error": self.error,
        }


@dataclass
class Detection:
    """One positioned occurrence of a detected value."""

    type: str
    original: str
    placeholder: str
    start: int
    end: int

    @property
    def span(self) -> tuple[int, int]:
        return (self.start, self.end)


@dataclass
class DetectionResult:
    """Positioned detections for previewing a redaction before it is applied."""

    redacted_text: str
    detections: list[Detection] = field(default_factory=list)
    detection_stats: dict[str, int] = field(default_factory=dict)

    @property
    def pii_count(self) -> int:
        """Get number of detected occurrences."""
        return len(self.detections)

    def to_dict(self, include_text: bool = True) -> dict[str, Any]:
        """Return a plain serializable record; originals are left out unless ``include_text``."""
        detections = []
        for d in self.detections:
            item: dict[str, Any] = {
                "type": d.type,
                "placeholder": d.placeholder,
                "start": d.start,
                "end": d.end,
            }
            if include_text:
                item["original"] = d.original
            detections.append(item)
        return {
            "redacted_text": self.redacted_text,
            "detections": detections,
            "detection_stats": dict(self.detection_stats),
            "pii_count": self.pii_count,
        }


@dataclass
class ValidationResult:
    """Result from validating a single value against one pattern type."""

    pattern_type: str
    is_valid: bool
    matched: bool = False
    validator_passed: Optional[bool] = None
