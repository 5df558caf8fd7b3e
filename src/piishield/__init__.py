"""
pii-shield: Detect and reversibly redact personal information.

Text is scanned with a prioritized regex catalog plus name and address
heuristics. Each distinct value is replaced by a numbered placeholder and a
redaction map allows the original text to be restored later. A mode router
can delegate detection to a remote AI-assisted service and fails closed
when that service is unavailable.
"""

__version__ = "0.1.0"

from piishield.engine import Engine, check_round_trip, restore, summarize_stats
from piishield.exceptions import (
    ConfigError,
    PatternCompilationError,
    PIIShieldError,
    RedactionCapacityError,
    RemoteServiceError,
    RestorationMismatchError,
    ValidatorError,
)
from piishield.models import (
    Detection,
    DetectionResult,
    PIIPattern,
    RedactionMode,
    RedactionResult,
    RedactionStatus,
    RedactOptions,
    ValidationResult,
)
from piishield.registry import PatternRegistry, load_registry
from piishield.remote import RemoteRedactionClient
from piishield.router import (
    FlagStore,
    LocalRedactor,
    ModeRouter,
    RemoteRedactor,
    ScopedFlagStore,
    StaticFlagStore,
)

__all__ = [
    "Engine",
    "restore",
    "check_round_trip",
    "summarize_stats",
    "load_registry",
    "PatternRegistry",
    "PIIPattern",
    "RedactOptions",
    "RedactionResult",
    "RedactionStatus",
    "RedactionMode",
    "ValidationResult",
    "Detection",
    "DetectionResult",
    "RemoteRedactionClient",
    "FlagStore",
    "StaticFlagStore",
    "ScopedFlagStore",
    "LocalRedactor",
    "RemoteRedactor",
    "ModeRouter",
    "PIIShieldError",
    "PatternCompilationError",
    "ValidatorError",
    "RemoteServiceError",
    "RestorationMismatchError",
    "RedactionCapacityError",
    "ConfigError",
]
